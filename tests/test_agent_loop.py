"""Tests for the per-file tool-calling loop."""

import pytest
from helpers import (
    answer,
    call,
    tools,
)
from pydantic import ValidationError

from code_reviewer.agent import agent_loop
from code_reviewer.agent.agent_loop import (
    CancelToken,
    LoopOptions,
    run_agent_loop,
)
from code_reviewer.agent.conversation import Conversation
from code_reviewer.core.errors import (
    DeadlineExceeded,
    LoopBudgetExceeded,
    RemoteFailure,
    RemoteTimeout,
    ReviewCancelled,
    ReviewError,
)

FAST = LoopOptions(max_rounds=10, max_retries=2, retry_backoff=0.0, file_deadline=None)


class FakeClock:
    """Stands in for the ``time`` module inside the loop."""

    def __init__(self) -> None:
        self.now = 0.0
        self.slept: list = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)


def test_verdict_without_tool_calls_ends_after_one_round(project, scripted) -> None:
    planner = scripted(answer("Looks fine."))
    conversation = Conversation.seeded(project["a_js"])

    result = run_agent_loop(conversation, planner, options=FAST)

    assert result.rounds == 1
    assert result.writes == 0
    assert result.verdict == "Looks fine."
    assert len(conversation) == 1


def test_read_then_write_then_done(project, scripted, reporter) -> None:
    a_js = project["a_js"]
    planner = scripted(
        tools(call("read_file", file_path=a_js)),
        tools(call("write_file", file_path=a_js, content="fixed")),
        answer("done"),
    )
    conversation = Conversation.seeded(a_js)

    result = run_agent_loop(conversation, planner, reporter=reporter, options=FAST)

    assert result.writes == 1
    assert result.rounds == 3
    assert result.verdict == "done"
    with open(a_js, encoding="utf-8") as f:
        assert f.read() == "fixed"
    # seed + 2 per executed invocation, nothing for the verdict
    assert len(conversation) == 1 + 2 * 2
    assert conversation.turns[2].tool_result.output == "var x = 1\n"
    assert conversation.turns[4].tool_result.output == "UPDATED"
    assert reporter.lines == [f"✍ Fixed: {a_js}"]


def test_model_sees_results_of_previous_round(project, scripted) -> None:
    planner = scripted(tools(call("read_file", file_path=project["a_js"])), answer("ok"))

    run_agent_loop(Conversation.seeded(project["a_js"]), planner, options=FAST)

    assert planner.seen_turn_counts == [1, 3]
    assert planner.seen_tools[0] == ["list_files", "read_file", "write_file"]


def test_calls_in_one_reply_run_in_order(project, scripted) -> None:
    a_js = project["a_js"]
    planner = scripted(
        tools(
            call("write_file", file_path=a_js, content="first"),
            call("read_file", file_path=a_js),
            call("write_file", file_path=a_js, content="second"),
        ),
        answer("done"),
    )
    conversation = Conversation.seeded(a_js)

    result = run_agent_loop(conversation, planner, options=FAST)

    assert result.writes == 2
    assert [t.tool_call.name for t in conversation.turns if t.tool_call] == [
        "write_file",
        "read_file",
        "write_file",
    ]
    assert conversation.turns[4].tool_result.output == "first"
    with open(a_js, encoding="utf-8") as f:
        assert f.read() == "second"


def test_unknown_tool_is_reported_back_to_the_model(project, scripted) -> None:
    planner = scripted(tools(call("delete_everything", path="/")), answer("sorry"))
    conversation = Conversation.seeded(project["a_js"])

    result = run_agent_loop(conversation, planner, options=FAST)

    error = conversation.turns[2].tool_result
    assert error.is_error
    assert "not registered" in error.output["error"]
    assert result.verdict == "sorry"


def test_failed_write_is_not_counted(tmp_path, scripted, reporter) -> None:
    missing = str(tmp_path / "gone.js")
    planner = scripted(tools(call("write_file", file_path=missing, content="x")), answer("done"))
    conversation = Conversation.seeded(missing)

    result = run_agent_loop(conversation, planner, reporter=reporter, options=FAST)

    assert result.writes == 0
    assert conversation.turns[2].tool_result.is_error
    assert reporter.lines == []


def test_second_enumeration_is_rejected(project, scripted) -> None:
    root = project["root"]
    planner = scripted(
        tools(call("list_files", directory=root)),
        tools(call("list_files", directory=root)),
        answer("done"),
    )
    conversation = Conversation.seeded(project["a_js"])

    run_agent_loop(conversation, planner, options=FAST)

    first, second = conversation.turns[2].tool_result, conversation.turns[4].tool_result
    assert first.output == [project["a_js"]]
    assert second.is_error
    assert "only be called 1 time" in second.output["error"]


def test_round_budget_is_enforced(project, scripted) -> None:
    read = tools(call("read_file", file_path=project["a_js"]))
    planner = scripted(read, read, read, read)
    options = FAST.model_copy(update={"max_rounds": 3})

    with pytest.raises(LoopBudgetExceeded):
        run_agent_loop(Conversation.seeded(project["a_js"]), planner, options=options)
    assert len(planner.seen_turn_counts) == 3


def test_remote_failures_are_retried(project, scripted, monkeypatch) -> None:
    clock = FakeClock()
    monkeypatch.setattr(agent_loop, "time", clock)
    planner = scripted(RemoteTimeout("slow"), RemoteFailure("503"), answer("ok"))
    options = FAST.model_copy(update={"retry_backoff": 0.5})

    result = run_agent_loop(Conversation.seeded(project["a_js"]), planner, options=options)

    assert result.verdict == "ok"
    assert clock.slept == [0.5, 1.0]


def test_remote_failure_after_retries_propagates(project, scripted) -> None:
    planner = scripted(RemoteFailure("a"), RemoteFailure("b"), RemoteFailure("c"))

    with pytest.raises(RemoteFailure, match="c"):
        run_agent_loop(Conversation.seeded(project["a_js"]), planner, options=FAST)


def test_cancelled_before_first_round(project, scripted) -> None:
    token = CancelToken()
    token.cancel()
    planner = scripted(answer("never"))

    with pytest.raises(ReviewCancelled):
        run_agent_loop(
            Conversation.seeded(project["a_js"]), planner, options=FAST, cancel_token=token
        )
    assert planner.seen_turn_counts == []


def test_cancel_is_checked_before_writes(project, scripted) -> None:
    a_js = project["a_js"]
    token = CancelToken()

    def cancel_then_write(conversation):
        token.cancel()
        return tools(call("write_file", file_path=a_js, content="fixed"))

    planner = scripted(cancel_then_write)

    with pytest.raises(ReviewCancelled):
        run_agent_loop(Conversation.seeded(a_js), planner, options=FAST, cancel_token=token)
    with open(a_js, encoding="utf-8") as f:
        assert f.read() == "var x = 1\n"


def test_file_deadline(project, scripted, monkeypatch) -> None:
    clock = FakeClock()
    monkeypatch.setattr(agent_loop, "time", clock)

    def slow_read(conversation):
        clock.now += 120
        return tools(call("read_file", file_path=project["a_js"]))

    planner = scripted(slow_read, answer("too late"))
    options = FAST.model_copy(update={"file_deadline": 60.0})

    with pytest.raises(DeadlineExceeded):
        run_agent_loop(Conversation.seeded(project["a_js"]), planner, options=options)


def test_budget_error_carries_the_writes(project, scripted) -> None:
    a_js = project["a_js"]
    write = tools(call("write_file", file_path=a_js, content="fixed"))
    options = FAST.model_copy(update={"max_rounds": 2})

    with pytest.raises(LoopBudgetExceeded) as excinfo:
        run_agent_loop(Conversation.seeded(a_js), scripted(write, write), options=options)
    assert excinfo.value.writes == 2


def test_unexpected_failure_is_wrapped_with_the_writes(project, scripted) -> None:
    a_js = project["a_js"]
    planner = scripted(
        tools(call("write_file", file_path=a_js, content="fixed")),
        RuntimeError("boom"),
    )

    with pytest.raises(ReviewError, match="boom") as excinfo:
        run_agent_loop(Conversation.seeded(a_js), planner, options=FAST)
    assert excinfo.value.writes == 1
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.parametrize(
    "field, value",
    [("max_rounds", 0), ("max_retries", -1), ("retry_backoff", -0.5), ("file_deadline", -1.0)],
)
def test_out_of_range_limits_are_rejected(field, value) -> None:
    with pytest.raises(ValidationError):
        LoopOptions(**{field: value})


def test_options_from_settings_validate_overrides(monkeypatch) -> None:
    monkeypatch.setattr(agent_loop.settings, "MAX_RETRIES", 4)

    options = LoopOptions.from_settings(max_rounds=7)

    assert options.max_rounds == 7
    assert options.max_retries == 4
    with pytest.raises(ValidationError):
        LoopOptions.from_settings(max_rounds=0)
