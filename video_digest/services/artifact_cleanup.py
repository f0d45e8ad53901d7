from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from video_digest.telemetry import TelemetryClient

LOGGER = logging.getLogger("video_digest.cleanup")


def sweep_artifacts(directory: Path, pattern: str) -> int:
    """Delete files in `directory` matching `pattern`; returns how many were removed.

    Individual deletion failures are logged and skipped.
    """
    removed = 0
    try:
        candidates = [path for path in directory.glob(pattern) if path.is_file()]
    except OSError as exc:
        LOGGER.warning("artifact sweep listing failed directory=%s error=%s", directory, exc)
        return 0

    for path in candidates:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("artifact sweep unlink failed path=%s error=%s", path, exc)
            continue
        removed += 1

    if removed:
        LOGGER.info("artifact sweep removed=%s directory=%s", removed, directory)
    return removed


@asynccontextmanager
async def artifact_sweep(
    directory: Path, pattern: str, *, telemetry: TelemetryClient | None = None
) -> AsyncIterator[None]:
    """Run the enclosed block, then sweep stray artifacts whether it succeeded or not."""
    try:
        yield
    finally:
        removed = sweep_artifacts(directory, pattern)
        if telemetry is not None:
            telemetry.emit("extract.cleanup.finish", removed_count=removed)
