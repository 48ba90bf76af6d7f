"""Temporary output file and atomic swap onto the original record."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from ngxcache_core.errors import RecordIOError, Stage

log = logging.getLogger(__name__)


class TempRecord:
    """Output file created next to ``target`` and swapped in on ``commit()``.

    Usage:
        with TempRecord(cache_path) as tmp:
            write(tmp.file, ...)
            tmp.commit()        # or tmp.discard() for a dry run

    Leaving the block without committing removes the temporary file, so a
    failed rewrite never leaves a half-written record behind. The original
    record's permission bits and owner/group are copied onto the new file.
    """

    def __init__(self, target: str | Path) -> None:
        self.target = Path(target)
        self.path: Path | None = None
        self.file: BinaryIO | None = None
        self._done = False

    def __enter__(self) -> TempRecord:
        try:
            self._stat = os.stat(self.target)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.target.parent, prefix=f"{self.target.name}.", suffix=".tmp"
            )
        except OSError as e:
            raise RecordIOError(Stage.WRITE, "create temporary record", e) from e
        self.path = Path(tmp_path)
        self.file = os.fdopen(fd, "w+b")
        return self

    def _require_open(self) -> None:
        if self.file is None or self.path is None or self._done:
            raise RuntimeError("TempRecord is not open; use it as a context manager")

    def commit(self) -> None:
        """fsync the new record and atomically replace the original with it."""
        self._require_open()
        try:
            self.file.flush()
            os.fsync(self.file.fileno())
            self.file.close()
            os.replace(self.path, self.target)
        except OSError as e:
            raise RecordIOError(Stage.WRITE, "replace cache record", e) from e
        self._done = True

        try:
            os.chmod(self.target, self._stat.st_mode & 0o7777)
            if hasattr(os, "chown"):
                os.chown(self.target, self._stat.st_uid, self._stat.st_gid)
        except OSError as e:
            raise RecordIOError(Stage.WRITE, "restore record ownership", e) from e
        log.info("Replaced %s", self.target)

    def discard(self) -> None:
        self._require_open()
        self.file.close()
        try:
            os.unlink(self.path)
        except OSError as e:
            raise RecordIOError(Stage.WRITE, "remove temporary record", e) from e
        self._done = True
        log.info("Dry run: discarded %s", self.path)

    def __exit__(self, *exc_info) -> None:
        if self._done:
            return
        self.file.close()
        try:
            os.unlink(self.path)
        except OSError:
            log.warning("Could not remove temporary record %s", self.path)
