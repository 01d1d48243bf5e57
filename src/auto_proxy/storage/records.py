"""JSON file persistence for proxy records."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from auto_proxy.domain.errors import RecordStoreError
from auto_proxy.domain.models import ProxyRecord

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    def load(self) -> list[ProxyRecord]: ...

    def save(self, records: list[ProxyRecord]) -> None: ...


class JsonRecordStore:
    """Whole-collection read/write of a single JSON array file.

    A missing file loads as an empty collection. Writes go through a temp
    file and ``os.replace`` so a crash mid-write never truncates the ledger.
    There is no locking: one orchestrating process per file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[ProxyRecord]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as exc:
            raise RecordStoreError(f"failed to read records from {self._path}: {exc}") from exc

        if data is None:
            return []
        if not isinstance(data, list):
            raise RecordStoreError(f"records file {self._path} must contain a JSON array")
        try:
            return [ProxyRecord.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as exc:
            raise RecordStoreError(f"malformed record in {self._path}: {exc}") from exc

    def save(self, records: list[ProxyRecord]) -> None:
        payload = json.dumps([record.to_dict() for record in records], indent=2, ensure_ascii=False)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp, self._path)
            except OSError:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise RecordStoreError(f"failed to write records to {self._path}: {exc}") from exc
        logger.debug("Saved %d record(s) to %s", len(records), self._path)
