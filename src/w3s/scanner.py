"""Chunk discovery.

Walks the directory that holds the source archive and picks out the
fragments carbites wrote next to it (``<base>-<index>.car``). Uses
os.walk() so hidden entries and bundle directories can be pruned
in place before descending.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterable
from pathlib import Path

from w3s.constants import BUNDLE_SUFFIXES, CHUNK_NAME_PATTERN
from w3s.models import ChunkFile

logger = logging.getLogger(__name__)


def is_chunk_filename(name: str) -> bool:
    """Return True for names like ``archive-0.car`` or ``archive-12.car``."""
    return CHUNK_NAME_PATTERN.match(name) is not None


def _is_bundle(dirname: str) -> bool:
    return os.path.splitext(dirname)[1].lower() in BUNDLE_SUFFIXES


def discover_chunk_files(
    root: Path, exclude: Iterable[Path] = ()
) -> list[ChunkFile]:
    """Discover chunk files recursively under *root*.

    Hidden files and directories are skipped, as are bundle directories
    (``.app``, ``.framework`` ...). A file qualifies when it is a regular
    file and its name matches :data:`CHUNK_NAME_PATTERN`.

    Paths in *exclude* are never returned, even when their names match.
    The source archive goes here: a name like ``backup-2023.car`` looks
    like a chunk but must not be uploaded or cleaned up.

    A missing root is not fatal: the problem is logged and an empty list
    returned. Entries whose metadata cannot be read are logged and skipped.

    Returns:
        ChunkFile objects sorted by path.
    """
    root = Path(root)
    if not root.is_dir():
        logger.error("Chunk directory does not exist: %s", root)
        return []

    excluded = {Path(p).resolve() for p in exclude}
    matched: list[ChunkFile] = []

    for dirpath, dirnames, filenames in os.walk(str(root), onerror=_log_walk_error):
        # Prune directories IN-PLACE (slice assignment)
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and not _is_bundle(d)
        )

        for filename in filenames:
            if filename.startswith(".") or not is_chunk_filename(filename):
                continue

            full_path = Path(dirpath) / filename
            if excluded and full_path.resolve() in excluded:
                logger.debug("Skipping excluded file %s", full_path)
                continue

            try:
                st = full_path.stat()
            except OSError as e:
                logger.warning("Cannot stat %s: %s", full_path, e)
                continue

            if not stat.S_ISREG(st.st_mode):
                logger.debug("Skipping non-regular file %s", full_path)
                continue

            matched.append(ChunkFile.from_path(full_path, size=st.st_size))

    matched.sort(key=lambda c: str(c.path))
    logger.info("Discovered %d chunk files under %s", len(matched), root)
    return matched


def _log_walk_error(error: OSError) -> None:
    logger.warning("Cannot read directory %s: %s", error.filename, error)
