"""Background job records, persisted as ``{"jobs": {job_id: record}}``.

Records are read once and written through on every change, so ``/jobs/{id}``
answers from memory and survives a restart. ``path=None`` never touches disk.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from .error_codes import StoreError

logger = logging.getLogger(__name__)


class JobStore:
    def __init__(self, path: Path | None = None) -> None:
        self._lock = threading.Lock()
        self.path = path
        self._records: dict[str, dict[str, Any]] | None = None
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)

    def load_all(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._cache().values()]

    def get(self, job_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._cache().get(job_id)
            return dict(record) if record is not None else None

    def upsert(self, record: dict[str, Any]) -> None:
        """Store ``record`` under its ``job_id``; records without one are dropped."""
        job_id = str(record.get("job_id") or "")
        if not job_id:
            logger.debug("ignoring job record without job_id")
            return
        with self._lock:
            self._cache()[job_id] = dict(record)
            self._flush()

    def update(self, job_id: str, **changes: Any) -> dict[str, Any] | None:
        with self._lock:
            record = self._cache().get(job_id)
            if record is None:
                return None
            record.update(changes)
            self._flush()
            return dict(record)

    def _cache(self) -> dict[str, dict[str, Any]]:
        if self._records is None:
            self._records = self._read()
        return self._records

    def _read(self) -> dict[str, dict[str, Any]]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
            payload = json.loads(raw) if raw.strip() else {}
        except (OSError, json.JSONDecodeError) as e:
            # An unreadable jobs file must not stop the service.
            logger.warning(
                "job store unreadable, starting empty",
                extra={"fields": {"path": str(self.path), "error": str(e)}},
            )
            return {}
        jobs = payload.get("jobs") if isinstance(payload, dict) else None
        if not isinstance(jobs, dict):
            return {}
        return {str(job_id): dict(r) for job_id, r in jobs.items() if isinstance(r, dict)}

    def _flush(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps({"jobs": self._records}, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Failed to write job store: {e}", path=str(self.path), write=True) from e
