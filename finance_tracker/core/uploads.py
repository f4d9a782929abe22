import asyncio
import logging
import re
import time
import uuid
from pathlib import Path

LOGGER = logging.getLogger("finance_tracker.uploads")

MAX_UPLOAD_AGE_SECONDS = 60 * 60
SWEEP_INTERVAL_SECONDS = 24 * 60 * 60

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class UploadDirectory:
    """
    Temporary storage for uploaded statements.

    Each upload gets its own generated name, so concurrent extractions never
    touch the same file. Anything left behind by a crash is removed by the
    age-based sweep.
    """

    def __init__(self, root, max_age_seconds=MAX_UPLOAD_AGE_SECONDS, clock=time.time):
        self.root = Path(root)
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def ensure(self):
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def unique_path(self, filename):
        stem = _UNSAFE_CHARS.sub("_", Path(filename or "statement").stem)[:60] or "statement"
        suffix = Path(filename or "").suffix.lower() or ".pdf"
        return self.root / f"pdf-{int(self._clock() * 1000)}-{uuid.uuid4().hex[:12]}-{stem}{suffix}"

    def save(self, filename, data):
        self.ensure()
        path = self.unique_path(filename)
        path.write_bytes(data)
        LOGGER.info("Stored upload %s (%d bytes)", path.name, len(data))
        return path

    def remove(self, path):
        """Delete one upload. Returns False if the file could not be removed."""
        try:
            Path(path).unlink(missing_ok=True)
            return True
        except OSError as exc:
            LOGGER.error("Failed to delete temporary file %s: %s", path, exc)
            return False

    def sweep_stale_uploads(self, now=None):
        """Delete uploads older than max_age_seconds. Returns the number deleted."""
        now = self._clock() if now is None else now
        try:
            entries = list(self.root.iterdir())
        except FileNotFoundError:
            return 0
        except OSError as exc:
            LOGGER.error("Failed to list upload directory %s: %s", self.root, exc)
            return 0

        deleted = 0
        for entry in entries:
            try:
                if not entry.is_file():
                    continue
                age = now - entry.stat().st_mtime
                if age > self.max_age_seconds:
                    entry.unlink()
                    deleted += 1
                    LOGGER.info("Deleted old temporary file: %s", entry.name)
            except OSError as exc:
                LOGGER.error("Failed to clean up temporary file %s: %s", entry, exc)
        return deleted

    async def run_periodic_sweep(self, interval_seconds=SWEEP_INTERVAL_SECONDS, sleep=asyncio.sleep):
        """Sweep forever, once per interval. Cancel the task to stop it."""
        while True:
            await sleep(interval_seconds)
            deleted = await asyncio.to_thread(self.sweep_stale_uploads)
            LOGGER.info("Scheduled upload sweep removed %d files", deleted)
