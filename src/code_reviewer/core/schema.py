"""
Schema definitions for planner <-> agent <-> tool messages.

These data models serve as the contract between the remote model adapters, the review loop, and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

import uuid
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    model_validator,
)


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


class Role(str, Enum):
    """Originator of a turn."""

    USER = "user"
    MODEL = "model"


class ParameterInfo(BaseModel):
    """Type and requiredness of a single tool parameter."""

    type: str
    required: bool = True


_JSON_TYPES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "dict": "object",
    "list": "array",
}


class ToolDeclaration(BaseModel):
    """Machine-readable description of a tool, advertised to the remote model."""

    name: str
    description: str = ""
    parameters: Dict[str, ParameterInfo] = Field(default_factory=dict)

    def as_json_schema(self) -> Dict[str, Any]:
        """Render the parameters as a JSON-schema ``object``."""
        return {
            "type": "object",
            "properties": {
                p: {"type": _JSON_TYPES.get(info.type, "string")}
                for p, info in self.parameters.items()
            },
            "required": [p for p, info in self.parameters.items() if info.required],
        }


class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(default_factory=_new_call_id, description="Provider or local call id")
    name: str = Field(..., description="Registered tool name")
    args: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the tool")


class ToolResult(BaseModel):
    """Outcome of executing a :class:`ToolCall`."""

    call_id: str
    name: str
    output: Any = None
    is_error: bool = False

    @classmethod
    def failure(cls, call: ToolCall, message: str) -> "ToolResult":
        """Wrap *message* in the ``{"error": ...}`` descriptor."""
        return cls(call_id=call.id, name=call.name, output={"error": message}, is_error=True)


class Turn(BaseModel):
    """One entry of a conversation: exactly one of text, tool call, or tool result."""

    role: Role
    text: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[ToolResult] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _single_content(self) -> "Turn":
        filled = [v for v in (self.text, self.tool_call, self.tool_result) if v is not None]
        if len(filled) != 1:
            raise ValueError("a turn carries exactly one of text, tool_call or tool_result")
        return self


class PlannerReply(BaseModel):
    """What a planner returns for one round: tool calls, or a final answer."""

    tool_calls: List[ToolCall] = Field(default_factory=list)
    answer: Optional[str] = None


class LoopResult(BaseModel):
    """Result of driving one file's review loop to completion."""

    file_path: str
    verdict: str = ""
    writes: int = 0
    rounds: int = 0


class FileOutcome(BaseModel):
    """Per-file record kept by the run coordinator."""

    file_path: str
    writes: int = 0
    verdict: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        """True if the file's review ended with an error."""
        return self.error is not None


class RunSummary(BaseModel):
    """Aggregate counters for a full run."""

    total_files: int = 0
    files_modified: int = 0
    writes: int = 0
    outcomes: List[FileOutcome] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def failed(self) -> List[FileOutcome]:
        """Outcomes of files whose review failed."""
        return [o for o in self.outcomes if o.failed]

    def record(self, outcome: FileOutcome) -> None:
        """Accumulate *outcome* into the counters."""
        self.outcomes.append(outcome)
        self.writes += outcome.writes
        if outcome.writes:
            self.files_modified += 1
