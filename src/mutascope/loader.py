"""Discover, read and parse the production files to mutate."""

from __future__ import annotations

import fnmatch
import glob
import logging
import os
from typing import Iterable

from mutascope.errors import ParseError
from mutascope.language import LanguageAdapter, PythonAdapter
from mutascope.models import SourceFile

logger = logging.getLogger(__name__)


def expand(path_pattern: str, adapter: LanguageAdapter | None = None) -> list[str]:
    """Files matching a file path, directory or glob, in sorted order."""
    adapter = adapter or PythonAdapter()
    if os.path.isdir(path_pattern):
        matches: list[str] = []
        for ext in adapter.file_extensions():
            matches.extend(glob.glob(os.path.join(path_pattern, "**", f"*{ext}"), recursive=True))
    else:
        matches = glob.glob(path_pattern, recursive=True)
    extensions = tuple(adapter.file_extensions())
    return sorted({m for m in matches if os.path.isfile(m) and m.endswith(extensions)})


def is_test_file(path: str, adapter: LanguageAdapter | None = None) -> bool:
    adapter = adapter or PythonAdapter()
    return adapter.test_file_pattern().search(path.replace(os.sep, "/")) is not None


def load(
    path_pattern: str,
    adapter: LanguageAdapter | None = None,
    root: str | None = None,
    exclude: Iterable[str] | None = None,
) -> list[SourceFile]:
    """Parse every non-test file under ``path_pattern``.

    Unreadable or unparsable files are logged and skipped.
    """
    adapter = adapter or PythonAdapter()
    excluded = list(exclude or ())
    loaded = []
    for path in expand(path_pattern, adapter):
        if is_test_file(path, adapter):
            continue
        if any(fnmatch.fnmatch(path, pattern) for pattern in excluded):
            logger.debug("excluded %s", path)
            continue
        try:
            with open(path, encoding="utf-8") as f:
                source = f.read()
            tree = adapter.parse(source, path)
        except (OSError, UnicodeDecodeError, ParseError) as exc:
            logger.warning("skipping %s: %s", path, exc)
            continue
        loaded.append(
            SourceFile(
                path=os.path.abspath(path),
                tree=tree,
                module_id=adapter.module_id(path, root),
                source=source,
            )
        )
    logger.info("loaded %d source files from %s", len(loaded), path_pattern)
    return loaded
