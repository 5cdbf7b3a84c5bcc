"""Read and write the unified daily artifact (``DATA/unified/daily.json``).

The artifact is the only thing downstream views consume.  It is rewritten in
full on every build; there is no incremental update.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from unifiedhealth.wearables.base import UnifiedDailyRecord

logger = logging.getLogger("unifiedhealth.wearables.store")


class UnifiedStoreError(ValueError):
    """Raised when the stored artifact exists but cannot be parsed."""


class UnifiedStore:
    """File-backed store for the ``{"data": [...]}`` artifact."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    @staticmethod
    def dumps(records: Iterable[UnifiedDailyRecord]) -> str:
        """Serialize records to the artifact text (two-space indent, trailing newline)."""
        payload = {"data": [r.to_dict() for r in records]}
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"

    def write(self, records: list[UnifiedDailyRecord]) -> Path:
        """Replace the artifact with *records*.

        Writes to a temp file in the same directory and renames it over the
        target, so readers never see a half-written file.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = self.dumps(records)

        fd, tmp_name = tempfile.mkstemp(prefix=".daily-", suffix=".json.tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("Saved %d unified daily records to %s", len(records), self.path)
        return self.path

    def read(self) -> list[UnifiedDailyRecord]:
        """Load the artifact.

        Returns:
            Records in file order, or ``[]`` if the artifact does not exist yet.

        Raises:
            UnifiedStoreError: If the file is not valid JSON or an entry is malformed.
        """
        if not self.path.is_file():
            logger.warning("Unified artifact not found at %s", self.path)
            return []

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UnifiedStoreError(f"{self.path} is not valid JSON: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise UnifiedStoreError(f"{self.path} has no 'data' list")

        records: list[UnifiedDailyRecord] = []
        for index, entry in enumerate(data):
            if not isinstance(entry, dict):
                raise UnifiedStoreError(f"{self.path} data[{index}] is not an object")
            try:
                records.append(UnifiedDailyRecord.from_dict(entry))
            except ValueError as exc:
                raise UnifiedStoreError(f"{self.path} data[{index}]: {exc}") from exc
        return records
