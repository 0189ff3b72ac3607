"""Main review loop: drives one file's conversation with the model to a final verdict."""

from __future__ import annotations

import logging
import threading
import time
from typing import (
    Optional,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
)

from code_reviewer.agent.conversation import Conversation
from code_reviewer.agent.planner_interface import BasePlanner
from code_reviewer.agent.tool_executor import (
    ToolExecutionError,
    execute_tool,
)
from code_reviewer.common import Reporter
from code_reviewer.config import settings
from code_reviewer.core.errors import (
    DeadlineExceeded,
    LoopBudgetExceeded,
    RemoteFailure,
    ReviewCancelled,
    ReviewError,
)
from code_reviewer.core.schema import (
    LoopResult,
    PlannerReply,
    ToolCall,
    ToolDeclaration,
    ToolResult,
)
from code_reviewer.tools import (
    TOOL_REGISTRY,
    ToolName,
    ToolRegistry,
)

logger = logging.getLogger(__name__)


class CancelToken:
    """User-triggered cancellation flag, checked between rounds and before writes."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ReviewCancelled("Review cancelled by user")


class LoopOptions(BaseModel):
    """Limits applied to each file's review loop."""

    max_rounds: int = Field(25, ge=1)
    max_retries: int = Field(2, ge=0)
    retry_backoff: float = Field(0.5, ge=0)
    file_deadline: Optional[float] = Field(600.0, ge=0)

    @classmethod
    def from_settings(cls, **overrides: object) -> "LoopOptions":
        """Build options from ``settings``; keyword overrides are validated like any other value."""
        values = {
            "max_rounds": settings.MAX_ROUNDS,
            "max_retries": settings.MAX_RETRIES,
            "retry_backoff": settings.RETRY_BACKOFF,
            "file_deadline": settings.FILE_DEADLINE,
        }
        values.update(overrides)
        return cls(**values)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _plan_with_retries(
    planner: BasePlanner,
    conversation: Conversation,
    declarations: Sequence[ToolDeclaration],
    options: LoopOptions,
) -> PlannerReply:
    """Ask *planner* for the next step, retrying transient remote failures."""
    for attempt in range(options.max_retries + 1):
        try:
            return planner.plan(conversation, declarations)
        except RemoteFailure as exc:
            if attempt >= options.max_retries:
                raise
            retry_delay = options.retry_backoff * (2**attempt)
            logger.warning(
                "Model call failed (%s), retrying in %.1f seconds (attempt %d/%d)...",
                exc,
                retry_delay,
                attempt + 1,
                options.max_retries,
            )
            time.sleep(retry_delay)
    raise AssertionError("unreachable")  # pragma: no cover


def _dispatch(call: ToolCall, conversation: Conversation, registry: ToolRegistry) -> ToolResult:
    """Execute *call* and wrap its outcome; failures become error descriptors for the model."""
    spec = registry.get(call.name)
    # The call itself is already in the history, hence the strict '>'.
    if spec is not None and spec.max_calls is not None:
        if conversation.call_count(call.name) > spec.max_calls:
            logger.info("Rejected extra call to '%s' for %s", call.name, conversation.file_path)
            return ToolResult.failure(
                call, f"'{call.name}' may only be called {spec.max_calls} time(s) per review."
            )
    try:
        output = execute_tool(call.name, call.args, registry=registry)
    except ToolExecutionError as exc:
        return ToolResult.failure(call, str(exc))
    if isinstance(output, dict) and "error" in output:
        return ToolResult(call_id=call.id, name=call.name, output=output, is_error=True)
    return ToolResult(call_id=call.id, name=call.name, output=output)


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
def run_agent_loop(
    conversation: Conversation,
    planner: BasePlanner,
    *,
    registry: ToolRegistry = TOOL_REGISTRY,
    reporter: Reporter | None = None,
    options: LoopOptions | None = None,
    cancel_token: CancelToken | None = None,
) -> LoopResult:
    """
    Review ``conversation.file_path`` until the model stops requesting tools.

    Each round sends the whole conversation and the tool declarations to *planner*.  Requested tool
    calls are executed strictly in the order given; each one appends a model turn (the call) and a
    user turn (its result).  A reply without tool calls ends the loop and nothing more is appended.

    Raises
    ------
    LoopBudgetExceeded
        If the model is still requesting tools after ``options.max_rounds`` rounds.
    DeadlineExceeded
        If the file's review runs past ``options.file_deadline`` seconds.
    RemoteFailure
        If a model call still fails after ``options.max_retries`` retries.
    ReviewCancelled
        If *cancel_token* is set; checked between rounds and before every write.
    ReviewError
        Wraps any other failure.  Every error raised here carries the writes made so far in
        ``writes``.
    """
    options = options or LoopOptions()
    declarations = registry.declarations()
    started = time.monotonic()
    file_path = conversation.file_path
    writes = 0

    try:
        for round_no in range(1, options.max_rounds + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if options.file_deadline is not None:
                elapsed = time.monotonic() - started
                if elapsed > options.file_deadline:
                    raise DeadlineExceeded(
                        f"Review of {file_path} exceeded {options.file_deadline:.0f}s deadline"
                    )

            reply = _plan_with_retries(planner, conversation, declarations, options)
            if not reply.tool_calls:
                logger.info(
                    "Finished %s after %d round(s), %d write(s)", file_path, round_no, writes
                )
                return LoopResult(
                    file_path=file_path, verdict=reply.answer or "", writes=writes, rounds=round_no
                )

            logger.info(
                "Round %d for %s: %d tool call(s): %s",
                round_no,
                file_path,
                len(reply.tool_calls),
                [call.name for call in reply.tool_calls],
            )
            for call in reply.tool_calls:
                is_write = call.name == ToolName.WRITE_FILE.value
                if is_write and cancel_token is not None:
                    cancel_token.raise_if_cancelled()

                conversation.add_tool_call(call)
                result = _dispatch(call, conversation, registry)
                conversation.add_tool_result(result)

                if result.is_error:
                    logger.warning("Tool '%s' failed: %s", call.name, result.output)
                elif is_write:
                    writes += 1
                    if reporter is not None:
                        reporter.line(f"✍ Fixed: {call.args.get('file_path', file_path)}")
    except ReviewError as exc:
        exc.writes = writes
        raise
    except Exception as exc:
        raise ReviewError(f"Review of {file_path} failed: {exc}", writes=writes) from exc

    raise LoopBudgetExceeded(
        f"Review of {file_path} did not finish within {options.max_rounds} rounds", writes=writes
    )
