"""Crash-safe JSON result log and run manifest."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, List, Set, Tuple, Union

from core.models import ResultRecord, RunManifest

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON to a temp file beside ``path`` then rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def manifest_path_for(results_path: Union[str, Path]) -> Path:
    """``results/run.json`` -> ``results/run.manifest.json``."""
    path = Path(results_path)
    return path.with_name(f"{path.stem}.manifest.json")


class ResultLog:
    """
    The growing set of completed results, mirrored to one JSON array on disk.

    Every ``record`` rewrites the whole file. Writes are serialized by a lock
    and go through a temp-file rename, so the file on disk is always a complete
    snapshot, either the previous one or the new one.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.results: List[ResultRecord] = []
        self._write_lock = asyncio.Lock()

    def load(self) -> List[ResultRecord]:
        """Load existing results for resuming. A missing file means a fresh run."""
        if not self.path.exists():
            self.results = []
            return self.results

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.results = [ResultRecord.from_dict(raw) for raw in data]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Could not read existing results at {self.path}, starting fresh: {e}")
            self.results = []
            return self.results

        logger.info(f"Resuming from {self.path} ({len(self.results)} existing results)")
        return self.results

    def completed_pairs(self) -> Set[Tuple[str, str]]:
        """``(strategy_name, scenario_name)`` of every stored result."""
        return {result.job_key for result in self.results}

    async def record(self, result: ResultRecord) -> None:
        """Add a result and persist the full collection."""
        self.results.append(result)
        await self.flush()

    async def flush(self) -> bool:
        """
        Rewrite the file from the in-memory results.

        Returns:
            False when the write failed; results stay in memory either way
        """
        async with self._write_lock:
            snapshot = [r.to_dict() for r in self.results]
            try:
                await asyncio.to_thread(atomic_write_json, self.path, snapshot)
            except OSError as e:
                logger.warning(f"Failed to save incremental results to {self.path}: {e}")
                return False
        return True

    def write_manifest(self, manifest: RunManifest) -> Path:
        """Write the run manifest next to the result log."""
        path = manifest_path_for(self.path)
        atomic_write_json(path, manifest.to_dict())
        logger.info(f"Manifest written to {path}")
        return path
