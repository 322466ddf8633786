"""Per-run scratch space: the uploaded document plus its page-image directory.

RunWorkspace is an async context manager. Entering creates the output
directory; leaving always deletes the document and the whole directory tree,
whether the run succeeded or raised. Cleanup errors are logged and never
replace the run's own result or exception.
"""
from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from types import TracebackType
from typing import Optional, Set, Type

logger = logging.getLogger(__name__)

# Paths owned by runs currently inside a RunWorkspace; the sweep never touches them
_active_paths: Set[Path] = set()


class RunWorkspace:
    def __init__(self, document_path: Path, run_id: str | None = None) -> None:
        self.document_path = Path(document_path)
        self.output_dir = self.document_path.with_name(f"{self.document_path.name}-pages")
        self.run_id = run_id or self.document_path.name

    @property
    def paths(self) -> Set[Path]:
        return {self.document_path.resolve(), self.output_dir.resolve()}

    async def __aenter__(self) -> "RunWorkspace":
        _active_paths.update(self.paths)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=False)
        except OSError:
            self.cleanup()
            _active_paths.difference_update(self.paths)
            raise
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        logger.info("[%s] state=cleaning_up", self.run_id)
        try:
            self.cleanup()
        finally:
            _active_paths.difference_update(self.paths)
        logger.info("[%s] state=done", self.run_id)

    def cleanup(self) -> None:
        try:
            self.document_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("[%s] failed to delete document %s: %s", self.run_id, self.document_path, exc)
        try:
            shutil.rmtree(self.output_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("[%s] failed to delete output dir %s: %s", self.run_id, self.output_dir, exc)


def sweep_stale_runs(root: Path, max_age_minutes: int) -> int:
    """Delete documents and page directories under `root` older than `max_age_minutes`.

    Only leftovers of runs that never reached cleanup (e.g. the process was
    killed mid-run) are old enough to match. Entries owned by a run still
    inside a RunWorkspace are skipped whatever their age, so a run that
    outlives `max_age_minutes` keeps its files.
    """
    if not root.is_dir():
        return 0
    cutoff = time.time() - max_age_minutes * 60
    deleted = 0
    for entry in root.iterdir():
        if entry.resolve() in _active_paths:
            continue
        try:
            if entry.stat().st_mtime >= cutoff:
                continue
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            deleted += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Retention: could not delete %s: %s", entry, exc)
    return deleted
