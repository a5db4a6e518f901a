"""
shopbooks_services.state_store -- Where the finance blob lives.

Responsibility:
    Read and write one ``FinanceState`` per storage key.  A store never
    merges; ``save`` replaces the blob and ``load`` returns it wholesale.

Architecture position:
    Services -- the only layer that touches files or the database.

Backends:
    InMemoryStateStore  -- dict of JSON payloads; tests and one-off scripts.
    JsonFileStateStore  -- one JSON file holding ``{storage_key: blob}``,
                           replaced atomically on every save.
    SqlStateStore       -- one ``shopbooks_state`` row per storage key,
                           written inside ``session_scope()``.

Failure modes:
    - StateLoadError when a stored payload cannot be decoded.
    - StateStoreError when the backend itself fails (I/O, SQL).
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shopbooks_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from shopbooks_kernel.db.models import FinanceStateRecord
from shopbooks_kernel.domain.clock import Clock, SystemClock
from shopbooks_kernel.exceptions import StateLoadError, StateStoreError
from shopbooks_kernel.logging_config import get_logger
from shopbooks_services.finance_state import FinanceState

logger = get_logger("services.state_store")


class StateStore(Protocol):
    """Persistence port of the finance service."""

    def load(self, storage_key: str) -> FinanceState | None:
        """The saved state, or None when nothing was saved under the key."""
        ...

    def save(self, storage_key: str, state: FinanceState) -> None:
        ...


class InMemoryStateStore:
    """Keeps serialized payloads in a dict so loads never alias live state."""

    def __init__(self) -> None:
        self._payloads: dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, storage_key: str) -> FinanceState | None:
        with self._lock:
            payload = self._payloads.get(storage_key)
        if payload is None:
            return None
        return FinanceState.from_json(payload, storage_key=storage_key)

    def save(self, storage_key: str, state: FinanceState) -> None:
        payload = state.to_json()
        with self._lock:
            self._payloads[storage_key] = payload

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._payloads)


class JsonFileStateStore:
    """
    A JSON file mapping storage keys to finance blobs.

    Saves write a temp file in the same directory and ``os.replace`` it over
    the target, so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateStoreError(str(self.path), "read", str(e)) from e
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StateLoadError(str(self.path), f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StateLoadError(str(self.path), "file must hold a JSON object")
        return data

    def load(self, storage_key: str) -> FinanceState | None:
        with self._lock:
            data = self._read_all()
        blob = data.get(storage_key)
        if blob is None:
            return None
        return FinanceState.from_dict(blob, storage_key=storage_key)

    def save(self, storage_key: str, state: FinanceState) -> None:
        with self._lock:
            data = self._read_all()
            data[storage_key] = state.to_dict()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent,
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_name, self.path)
            except OSError as e:
                Path(tmp_name).unlink(missing_ok=True)
                raise StateStoreError(storage_key, "write", str(e)) from e

        logger.debug("state_file_written", extra={
            "path": str(self.path),
            "key_count": len(data),
        })


class SqlStateStore:
    """
    One ``FinanceStateRecord`` row per storage key.

    Each save bumps the row's revision and runs in its own transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    @classmethod
    def from_url(cls, database_url: str, clock: Clock | None = None) -> SqlStateStore:
        """Initialize the engine for ``database_url`` and create missing tables."""
        engine = init_engine_from_url(database_url)
        create_tables(engine)
        return cls(sessionmaker(bind=engine, expire_on_commit=False), clock=clock)

    def _find(self, session: Session, storage_key: str) -> FinanceStateRecord | None:
        return session.scalars(
            select(FinanceStateRecord).where(FinanceStateRecord.storage_key == storage_key)
        ).one_or_none()

    def load(self, storage_key: str) -> FinanceState | None:
        try:
            with session_scope(self._session_factory) as session:
                record = self._find(session, storage_key)
                payload = record.payload if record is not None else None
        except SQLAlchemyError as e:
            raise StateStoreError(storage_key, "read", str(e)) from e
        if payload is None:
            return None
        return FinanceState.from_json(payload, storage_key=storage_key)

    def save(self, storage_key: str, state: FinanceState) -> None:
        payload = state.to_json()
        try:
            with session_scope(self._session_factory) as session:
                record = self._find(session, storage_key)
                if record is None:
                    record = FinanceStateRecord(
                        storage_key=storage_key,
                        payload=payload,
                        revision=1,
                        saved_at=self._clock.now(),
                    )
                    session.add(record)
                else:
                    record.payload = payload
                    record.revision += 1
                    record.saved_at = self._clock.now()
                revision = record.revision
        except SQLAlchemyError as e:
            raise StateStoreError(storage_key, "write", str(e)) from e

        logger.debug("state_row_written", extra={
            "storage_key": storage_key,
            "revision": revision,
        })

    def revision(self, storage_key: str) -> int:
        """Current revision of the key, 0 when never saved."""
        with session_scope(self._session_factory) as session:
            record = self._find(session, storage_key)
            return record.revision if record is not None else 0
