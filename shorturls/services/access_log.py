import asyncio
import logging
import threading
from typing import List

logger = logging.getLogger(__name__)

class AccessLogBuffer:
    """Request lines held in memory and appended to a file in batches."""

    def __init__(self, path: str):
        self.path = path
        self._lines: List[str] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._lines)

    def append(self, line: str):
        if not self.path:
            return
        with self._lock:
            self._lines.append(line)

    def flush(self) -> int:
        with self._lock:
            if not self._lines:
                return 0
            batch = self._lines
            self._lines = []

        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write("\n".join(batch) + "\n")
        except OSError as e:
            logger.error(f"Error writing access log: {e}")
            # Put the batch back in front so the next flush retries it
            with self._lock:
                self._lines = batch + self._lines
            return 0
        return len(batch)

async def flush_access_log(buffer: AccessLogBuffer, interval: float):
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                await asyncio.to_thread(buffer.flush)
            except Exception as e:
                logger.error(f"Error in access log flush job: {e}")
    finally:
        # Final batch on shutdown
        buffer.flush()
