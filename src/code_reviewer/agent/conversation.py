"""Append-only turn history for one file's review."""

from typing import Tuple

from code_reviewer.core.schema import (
    Role,
    ToolCall,
    ToolResult,
    Turn,
)

SEED_PROMPT = "Review and fix this file: {file_path}"


class Conversation:
    """
    Ordered record of the turns exchanged with the model while reviewing *file_path*.

    Turns can only be appended.  The ordering is the history the model conditions on, so provider
    adapters must replay :attr:`turns` exactly as stored.
    """

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        self._turns: list[Turn] = []

    @classmethod
    def seeded(cls, file_path: str) -> "Conversation":
        """Create a conversation holding the single "review and fix" request."""
        conversation = cls(file_path)
        conversation.add_user_text(SEED_PROMPT.format(file_path=file_path))
        return conversation

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def _append(self, turn: Turn) -> Turn:
        self._turns.append(turn)
        return turn

    def add_user_text(self, text: str) -> Turn:
        return self._append(Turn(role=Role.USER, text=text))

    def add_tool_call(self, call: ToolCall) -> Turn:
        return self._append(Turn(role=Role.MODEL, tool_call=call))

    def add_tool_result(self, result: ToolResult) -> Turn:
        return self._append(Turn(role=Role.USER, tool_result=result))

    def call_count(self, name: str) -> int:
        """How many calls to tool *name* the model has made so far."""
        return sum(1 for t in self._turns if t.tool_call is not None and t.tool_call.name == name)
