"""Dispatches tool calls registered in ``code_reviewer.tools`` and wraps errors."""

import logging
from typing import (
    Any,
    Dict,
)

from code_reviewer.tools import (
    TOOL_REGISTRY,
    ToolRegistry,
)

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


class IOFailure(ToolExecutionError):
    """Raised when a tool fails on a filesystem read or write."""


def execute_tool(
    name: str, args: Dict[str, Any] | None = None, registry: ToolRegistry = TOOL_REGISTRY
) -> Any:
    """
    Look up *name* in *registry* and invoke it with *args*.

    Parameters
    ----------
    name:
        The registered tool name.
    args:
        Keyword arguments to pass verbatim to the tool function.  If *None*,
        an empty dict is assumed.
    registry:
        Where to look the tool up (the default filesystem registry if omitted).

    Returns
    -------
    Any
        Whatever the tool function returns.

    Raises
    ------
    ToolExecutionError
        If the tool is missing or its invocation raises an exception.
    IOFailure
        If the tool raised :class:`OSError`.
    """

    if args is None:
        args = {}

    spec = registry.get(name)
    if spec is None:
        raise ToolExecutionError(f"Tool '{name}' is not registered.")

    try:
        logger.debug("Executing tool '%s' with args=%s", name, list(args))
        return spec.fn(**args)
    except TypeError as exc:
        # Argument mismatch — give the caller a clean exception.
        logger.warning("Argument error while executing tool '%s': %s", name, exc)
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
    except OSError as exc:
        logger.warning("I/O error in tool '%s': %s", name, exc)
        raise IOFailure(f"Tool '{name}' failed: {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc
