"""
Tool registry for the code reviewer.

This module provides a registry that maps tool names to functions, a decorator to register tools,
and the machine-readable declarations advertised to the remote model.  The tools are functions that
are called with keyword arguments and return a value.
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    get_type_hints,
)

from code_reviewer.core.schema import (
    ParameterInfo,
    ToolDeclaration,
)

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    """Names of the built-in tools."""

    LIST_FILES = "list_files"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool: its handler and an optional per-review call limit."""

    name: str
    fn: Callable
    max_calls: Optional[int] = None

    def declaration(self) -> ToolDeclaration:
        """Extract the declaration from the handler's signature and docstring."""
        sig = inspect.signature(self.fn)
        type_hints = get_type_hints(self.fn)
        params = {}
        for param_name, param in sig.parameters.items():
            param_type = type_hints.get(param_name, "any")
            params[param_name] = ParameterInfo(
                type=getattr(param_type, "__name__", str(param_type)),
                required=param.default is inspect.Parameter.empty,
            )
        doc = inspect.getdoc(self.fn) or ""
        return ToolDeclaration(
            name=self.name, description=doc.split("\n\n")[0].strip(), parameters=params
        )


class ToolRegistry:
    """
    Name -> tool lookup table.

    Tools are registered at import time with :meth:`register`; once :meth:`freeze` has been called
    the table is read-only for the rest of the process.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}
        self._frozen = False

    def register(self, name: str, max_calls: Optional[int] = None) -> Callable:
        """
        Register a tool function under *name*.

        Used as a decorator:
            @registry.register("my_tool")
            def my_tool_function(arg1: str) -> str:
                ...

        Parameters
        ----------
        name: str
            Unique tool name, used by the model to request the tool.
        max_calls: int, optional
            How many times the tool may run within one file's review.
        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        RuntimeError
            If the registry has been frozen.
        """
        if self._frozen:
            raise RuntimeError(f"Cannot register '{name}': tool registry is frozen.")
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        logger.debug("Registering tool '%s'", name)

        def wrapper(fn: Callable) -> Callable:
            self._tools[name] = ToolSpec(name=name, fn=fn, max_calls=max_calls)
            return fn

        return wrapper

    def freeze(self) -> None:
        """Disallow further registrations."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def declarations(self) -> List[ToolDeclaration]:
        """Declarations of every registered tool, in registration order."""
        return [spec.declaration() for spec in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)


TOOL_REGISTRY = ToolRegistry()
"""Default registry holding the filesystem tools."""

register_tool = TOOL_REGISTRY.register


def get_tool_schemas() -> Mapping[str, ToolDeclaration]:
    """Declarations of the default registry keyed by tool name."""
    return {decl.name: decl for decl in TOOL_REGISTRY.declarations()}


# Populate the default registry.
from code_reviewer.tools import filesystem  # noqa: E402,F401  pylint: disable=wrong-import-position
