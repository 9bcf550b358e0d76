"""Checkpoints for resumable historical backfills."""

import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

from diskcache import Cache

logger = logging.getLogger(__name__)


class BackfillCheckpoint:
    """Records which (title, issue date) revisions a backfill has finished.

    Each revision gets its own key so concurrent title workers never overwrite
    each other's progress.
    """

    def __init__(self, checkpoint_id: str = "historical_backfill", base_dir: Optional[str] = None):
        """
        Initialize checkpoint manager.

        Args:
            checkpoint_id: Unique identifier for this checkpoint
            base_dir: Base directory for checkpoints. Defaults to ./data/checkpoints
        """
        self.checkpoint_id = checkpoint_id

        if base_dir is None:
            base_dir = os.path.join(os.getcwd(), "data", "checkpoints")

        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        self.cache = Cache(str(self.base_dir))
        self._key_prefix = f"{checkpoint_id}:"

        logger.debug(
            f"Checkpoint initialized: {checkpoint_id}",
            extra={"checkpoint_id": checkpoint_id, "checkpoint_path": str(self.base_dir)},
        )

    def _get_key(self, kind: str, title_number: int, effective_date: date) -> str:
        return f"{self._key_prefix}{kind}:{title_number}:{effective_date.isoformat()}"

    def is_complete(self, title_number: int, effective_date: date) -> bool:
        return self._get_key("done", title_number, effective_date) in self.cache

    def mark_complete(self, title_number: int, effective_date: date) -> None:
        self.cache.set(self._get_key("done", title_number, effective_date), datetime.now().isoformat())
        self.cache.delete(self._get_key("failed", title_number, effective_date))

    def mark_failed(self, title_number: int, effective_date: date, error: str) -> None:
        self.cache.set(
            self._get_key("failed", title_number, effective_date),
            {"error": error, "timestamp": datetime.now().isoformat()},
        )

    def get_failed(self) -> Dict[str, Dict[str, Any]]:
        """Failed revisions keyed by 'title:date'."""
        prefix = f"{self._key_prefix}failed:"
        return {
            key[len(prefix):]: self.cache.get(key)
            for key in self.cache.iterkeys()
            if isinstance(key, str) and key.startswith(prefix)
        }

    def clear(self) -> None:
        """Clear checkpoint data for this specific checkpoint."""
        deleted_count = 0
        with self.cache.transact():
            for key in list(self.cache.iterkeys()):
                if isinstance(key, str) and key.startswith(self._key_prefix):
                    del self.cache[key]
                    deleted_count += 1

        logger.info(f"Checkpoint cleared: {self.checkpoint_id} ({deleted_count} keys removed)")

    def get_summary(self) -> Dict[str, Any]:
        """Get checkpoint summary for logging."""
        done_prefix = f"{self._key_prefix}done:"
        completed = sum(
            1 for key in self.cache.iterkeys() if isinstance(key, str) and key.startswith(done_prefix)
        )
        failed = len(self.get_failed())

        return {
            "checkpoint_id": self.checkpoint_id,
            "completed_count": completed,
            "failed_count": failed,
            "has_failures": failed > 0,
        }
