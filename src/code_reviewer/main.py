"""
Code reviewer entry point.

This file handles startup concerns (arg-parsing, logging, credentials, Ctrl+C) and runs a review of
one project directory.
"""

import argparse
import logging
import os
import signal
import sys
from types import FrameType
from typing import (
    Any,
    Optional,
)

from code_reviewer.agent.agent_loop import (
    CancelToken,
    LoopOptions,
)
from code_reviewer.agent.coordinator import run_review
from code_reviewer.common import (
    ConsoleReporter,
    Reporter,
)
from code_reviewer.config import settings
from code_reviewer.core.errors import ReviewError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )
    # SDK clients log every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _install_sigint(token: CancelToken) -> Any:
    """First Ctrl+C cancels at the next safe point; a second one interrupts immediately."""

    def handler(signum: int, frame: Optional[FrameType]) -> None:
        if token.cancelled:
            raise KeyboardInterrupt
        token.cancel()
        print("⏹  Cancelling after the current step (Ctrl+C again to abort)", file=sys.stderr)

    return signal.signal(signal.SIGINT, handler)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Review and fix the source files of a project")
    parser.add_argument(
        "root",
        nargs="?",
        default=None,
        help="Project directory (default: WORKSPACE_ROOT or the current directory)",
    )
    parser.add_argument(
        "--planner",
        choices=["gemini", "openai", "anthropic", "tgi"],
        type=str.lower,
        default=settings.PLANNER,
        help="Model back-end (default from env: %(default)s)",
    )
    parser.add_argument("--model", default=settings.MODEL, help="Override the back-end's model")
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=settings.MAX_ROUNDS,
        help="Model calls allowed per file (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None, reporter: Reporter | None = None) -> int:
    """
    Run one review and return the process exit code.

    Missing credentials, unreadable project directories, unknown planners and out-of-range limits
    are reported as a single error line, never as a traceback.
    """
    if argv is None:
        argv = sys.argv[1:]
    args = _build_parser().parse_args(argv)

    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    reporter = reporter or ConsoleReporter()
    root = os.path.abspath(args.root or settings.WORKSPACE_ROOT or os.getcwd())
    token = CancelToken()

    logger.info("Starting review of %s [%s planner]", root, args.planner)
    reporter.line("🚀 Starting AI Code Review...\n")
    previous_handler = _install_sigint(token)
    try:
        options = LoopOptions.from_settings(max_rounds=args.max_rounds)
        summary = run_review(
            root,
            reporter,
            settings.api_key_for(args.planner),
            planner_name=args.planner,
            model=args.model,
            options=options,
            cancel_token=token,
        )
    except (ReviewError, ValueError) as exc:
        reporter.error(f"❌ ERROR: {exc}")
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if summary.cancelled:
        reporter.error("Code Review Cancelled")
        return EXIT_CANCELLED
    reporter.success("Code Review Completed")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
