"""
Ledger of staging archives that cdbuild could not delete.

One JSON object per line, appended when cleanup fails or is skipped, so a
periodic job can remove the objects out of band.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Union

from cdbuild.storage.uploader import StagingLocation
from cdbuild.utils.logging import get_logger

logger = get_logger(__name__)


class OrphanLedger:
    """Append-only JSON-lines file of orphaned staging objects."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def record(self, location: StagingLocation, reason: str) -> None:
        """Append an entry for ``location``. Creates parent directories as needed."""
        entry = {
            "bucket": location.bucket,
            "object": location.object_name,
            "run_id": location.run_id,
            "reason": reason,
            "recorded_at": datetime.now(timezone.utc).isoformat(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry) + "\n")
        logger.warning(f"Recorded orphaned archive {location.gcs_uri} in {self.path}")

    def entries(self) -> List[Dict[str, str]]:
        """Return every recorded entry, oldest first. Empty if the file does not exist."""
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]
