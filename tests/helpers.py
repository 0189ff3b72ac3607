"""Test doubles: a scripted stand-in for the remote model and a reporter that records output."""

from typing import (
    Any,
    List,
    Sequence,
)

from code_reviewer.agent.conversation import Conversation
from code_reviewer.agent.planner_interface import BasePlanner
from code_reviewer.core.schema import (
    PlannerReply,
    ToolCall,
    ToolDeclaration,
)


class ScriptedPlanner(BasePlanner):
    """Replays a fixed list of replies; an exception in the list is raised instead of returned."""

    def __init__(self, replies: Sequence[Any]) -> None:
        super().__init__(api_key="test-key")
        self.replies = list(replies)
        self.seen_turn_counts: List[int] = []
        self.seen_tools: List[List[str]] = []

    def plan(self, conversation: Conversation, tools: Sequence[ToolDeclaration]) -> PlannerReply:
        self.seen_turn_counts.append(len(conversation))
        self.seen_tools.append([decl.name for decl in tools])
        if not self.replies:
            raise AssertionError("planner called more often than scripted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(conversation)
        return reply


class RecordingReporter:
    """Reporter that keeps every message for assertions."""

    def __init__(self) -> None:
        self.lines: List[str] = []
        self.errors: List[str] = []
        self.successes: List[str] = []

    def line(self, text: str) -> None:
        self.lines.append(text)

    def success(self, text: str) -> None:
        self.successes.append(text)

    def error(self, text: str) -> None:
        self.errors.append(text)


def call(name: str, **args: Any) -> ToolCall:
    return ToolCall(name=name, args=args)


def tools(*calls: ToolCall) -> PlannerReply:
    return PlannerReply(tool_calls=list(calls))


def answer(text: str) -> PlannerReply:
    return PlannerReply(answer=text)
