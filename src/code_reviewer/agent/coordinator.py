"""
Run coordinator: reviews every source file of a project, one at a time.

The coordinator owns the run summary.  It hands each file a fresh conversation, lets the agent loop
drive it, and contains per-file failures so one bad file does not abort the batch.  Only missing
credentials, enumeration failures and user cancellation end a run early.
"""

import logging
import os

from code_reviewer.agent.agent_loop import (
    CancelToken,
    LoopOptions,
    run_agent_loop,
)
from code_reviewer.agent.conversation import Conversation
from code_reviewer.agent.planner_interface import (
    BasePlanner,
    get_planner_class,
)
from code_reviewer.common import Reporter
from code_reviewer.config import settings
from code_reviewer.core.errors import (
    EnumerationFailure,
    MissingCredential,
    ReviewCancelled,
    ReviewError,
)
from code_reviewer.core.schema import (
    FileOutcome,
    RunSummary,
)
from code_reviewer.tools import (
    TOOL_REGISTRY,
    ToolRegistry,
)
from code_reviewer.tools.filesystem import list_files

logger = logging.getLogger(__name__)


def _resolve_planner(
    planner: BasePlanner | None, planner_name: str | None, api_key: str | None, model: str | None
) -> BasePlanner:
    if planner is not None:
        if planner.requires_api_key and not api_key:
            raise MissingCredential("Please set an API key for the selected planner")
        return planner
    cls = get_planner_class(planner_name)
    if cls.requires_api_key and not api_key:
        raise MissingCredential(
            f"Please set an API key for the '{planner_name or settings.PLANNER}' planner"
        )
    return cls(api_key=api_key, model=model, timeout=settings.REQUEST_TIMEOUT)


def format_summary(summary: RunSummary) -> str:
    """Render the end-of-run block."""
    lines = [
        "",
        "📊 CODE REVIEW COMPLETE",
        f"Total Files: {summary.total_files}",
        f"Files Fixed: {summary.files_modified}",
    ]
    if summary.failed:
        lines.append(f"Files Failed: {len(summary.failed)}")
    if summary.cancelled:
        lines.append("Run cancelled before all files were reviewed")
    return "\n".join(lines)


def run_review(
    root_dir: str,
    reporter: Reporter,
    api_key: str | None,
    *,
    planner: BasePlanner | None = None,
    planner_name: str | None = None,
    model: str | None = None,
    registry: ToolRegistry = TOOL_REGISTRY,
    options: LoopOptions | None = None,
    cancel_token: CancelToken | None = None,
) -> RunSummary:
    """
    Review every source file under *root_dir*.

    Parameters
    ----------
    root_dir:
        Project directory to enumerate.
    reporter:
        Receives progress lines and the final summary.
    api_key:
        Credential for the planner; checked before anything touches the filesystem.
    planner:
        Ready-made planner.  If omitted, one is built from *planner_name* (or ``settings.PLANNER``)
        and *model*.
    registry:
        Tools offered to the model; frozen for the rest of the process.
    options:
        Per-file loop limits (``LoopOptions.from_settings()`` if omitted).
    cancel_token:
        Set it to stop the run at the next round boundary.

    Returns
    -------
    RunSummary
        Counters and per-file outcomes.  A run with no source files returns an empty summary.

    Raises
    ------
    MissingCredential
        If the planner needs an API key and *api_key* is empty.
    EnumerationFailure
        If *root_dir* cannot be walked.
    """
    active_planner = _resolve_planner(planner, planner_name, api_key, model)
    options = options or LoopOptions.from_settings()
    registry.freeze()

    files = list_files(root_dir)
    if isinstance(files, dict):
        raise EnumerationFailure(f"Cannot list files in {root_dir}: {files.get('error')}")

    summary = RunSummary(total_files=len(files))
    if not files:
        reporter.line("❌ No source files found")
        return summary

    logger.info("Reviewing %d files under %s", len(files), root_dir)
    for file_path in files:
        reporter.line(f"🔍 Reviewing: {file_path}")
        conversation = Conversation.seeded(file_path)
        try:
            result = run_agent_loop(
                conversation,
                active_planner,
                registry=registry,
                reporter=reporter,
                options=options,
                cancel_token=cancel_token,
            )
        except ReviewCancelled as exc:
            logger.info("Run cancelled while reviewing %s", file_path)
            summary.cancelled = True
            if exc.writes:
                summary.record(FileOutcome(file_path=file_path, writes=exc.writes, error=str(exc)))
            break
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-except
            logger.exception("Review of %s failed", file_path)
            reporter.error(f"❌ Skipped {os.path.basename(file_path)}: {exc}")
            writes = exc.writes if isinstance(exc, ReviewError) else 0
            summary.record(FileOutcome(file_path=file_path, writes=writes, error=str(exc)))
            continue

        if result.verdict:
            reporter.line(result.verdict)
        summary.record(
            FileOutcome(file_path=file_path, writes=result.writes, verdict=result.verdict)
        )

    reporter.line(format_summary(summary))
    return summary
