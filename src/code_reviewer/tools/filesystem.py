"""
Filesystem tools the model can call: enumerate source files, read one, overwrite one.

``list_files`` never raises; it reports walk failures as an ``{"error": ...}`` descriptor so the
caller decides whether to abort.  ``read_file`` and ``write_file`` raise :class:`OSError`.
"""

import logging
import os
from typing import (
    Dict,
    List,
)

from code_reviewer.tools import (
    ToolName,
    register_tool,
)

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = frozenset({".js", ".ts", ".html", ".css", ".jsx", ".tsx"})
EXCLUDED_DIRS = frozenset({"node_modules"})
UPDATED = "UPDATED"


def _is_excluded_dir(name: str) -> bool:
    return name.startswith(".") or name in EXCLUDED_DIRS


def _is_source_file(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in SOURCE_EXTENSIONS


def _walk(directory: str) -> List[str]:
    files: List[str] = []
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        # Symlinks are neither followed nor listed, so cycles cannot occur.
        if entry.is_dir(follow_symlinks=False):
            if not _is_excluded_dir(entry.name):
                files.extend(_walk(entry.path))
        elif entry.is_file(follow_symlinks=False) and _is_source_file(entry.name):
            files.append(os.path.normpath(entry.path))
    return files


@register_tool(ToolName.LIST_FILES.value, max_calls=1)
def list_files(directory: str) -> List[str] | Dict[str, str]:
    """List all source files ONCE

    Walks *directory* recursively, skipping hidden directories and ``node_modules``, and returns the
    normalized paths of ``.js .ts .html .css .jsx .tsx`` files in sorted order.
    """
    try:
        files = _walk(os.path.normpath(directory))
    except OSError as exc:
        logger.warning("Failed to enumerate %s: %s", directory, exc)
        return {"error": str(exc)}
    logger.debug("Found %d source files under %s", len(files), directory)
    return files


@register_tool(ToolName.READ_FILE.value)
def read_file(file_path: str) -> str:
    """Read a source file"""
    with open(os.path.normpath(file_path), encoding="utf-8") as f:
        return f.read()


@register_tool(ToolName.WRITE_FILE.value)
def write_file(file_path: str, content: str) -> str:
    """Write fixed code back

    Only existing files are overwritten; a missing path raises :class:`FileNotFoundError`.
    """
    path = os.path.normpath(file_path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"No such file: '{path}'")
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    logger.debug("Wrote %d characters to %s", len(content), path)
    return UPDATED
