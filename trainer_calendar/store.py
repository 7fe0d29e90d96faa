"""
Persistence adapters.

The calendar core talks to a ``Store``; it never knows whether the records
live in Firestore (``trainer_calendar.db.FirestoreStore``) or in a local JSON
file (``JsonFileStore``).  Every mutation goes through ``run_transaction`` so
a rejected operation leaves all three collections untouched.

Transaction bodies must issue their reads before their writes, which is
what Firestore requires and what the local adapters assume as well.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

from trainer_calendar.errors import NotFound, PersistenceError
from trainer_calendar.models import BOOKINGS, PACKAGES, PAYMENTS

logger = logging.getLogger(__name__)

KINDS = (BOOKINGS, PACKAGES, PAYMENTS)

Doc = dict[str, Any]
Listener = Callable[[list[Doc]], None]
T = TypeVar("T")


def new_id() -> str:
    # Same length as a Firestore auto-id.
    return uuid.uuid4().hex[:20]


class Transaction(ABC):
    @abstractmethod
    def get(self, kind: str, doc_id: str) -> Doc | None: ...

    @abstractmethod
    def where(self, kind: str, field: str, value: Any) -> list[Doc]: ...

    @abstractmethod
    def set(self, kind: str, doc_id: str, data: Doc) -> None: ...

    @abstractmethod
    def update(self, kind: str, doc_id: str, fields: Doc) -> None: ...

    @abstractmethod
    def delete(self, kind: str, doc_id: str) -> None: ...


class Store(ABC):
    @abstractmethod
    def list(self, kind: str) -> list[Doc]: ...

    @abstractmethod
    def get(self, kind: str, doc_id: str) -> Doc | None: ...

    @abstractmethod
    def where(self, kind: str, field: str, value: Any) -> list[Doc]: ...

    @abstractmethod
    def subscribe(self, kind: str, callback: Listener) -> Callable[[], None]:
        """Call ``callback(docs)`` with the whole collection on every change."""

    @abstractmethod
    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` as one unit of work: all its writes apply, or none."""

    def add(self, kind: str, data: Doc, doc_id: str | None = None) -> str:
        doc_id = doc_id or new_id()
        self.run_transaction(lambda txn: txn.set(kind, doc_id, data))
        return doc_id

    def update(self, kind: str, doc_id: str, fields: Doc) -> None:
        self.run_transaction(lambda txn: txn.update(kind, doc_id, fields))

    def delete(self, kind: str, doc_id: str) -> None:
        self.run_transaction(lambda txn: txn.delete(kind, doc_id))


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise ValueError(f"Unknown collection: {kind!r}")


def _with_id(doc_id: str, data: Doc) -> Doc:
    return {"id": doc_id, **copy.deepcopy(data)}


class _MemoryTransaction(Transaction):
    def __init__(self, data: dict[str, dict[str, Doc]]) -> None:
        self._data = data
        self.touched: set[str] = set()

    def get(self, kind: str, doc_id: str) -> Doc | None:
        _check_kind(kind)
        doc = self._data[kind].get(doc_id)
        return _with_id(doc_id, doc) if doc is not None else None

    def where(self, kind: str, field: str, value: Any) -> list[Doc]:
        _check_kind(kind)
        return [_with_id(i, d) for i, d in self._data[kind].items() if d.get(field) == value]

    def set(self, kind: str, doc_id: str, data: Doc) -> None:
        _check_kind(kind)
        self._data[kind][doc_id] = {k: v for k, v in copy.deepcopy(data).items() if k != "id"}
        self.touched.add(kind)

    def update(self, kind: str, doc_id: str, fields: Doc) -> None:
        _check_kind(kind)
        if doc_id not in self._data[kind]:
            raise NotFound(kind, doc_id)
        self._data[kind][doc_id].update(copy.deepcopy(fields))
        self.touched.add(kind)

    def delete(self, kind: str, doc_id: str) -> None:
        _check_kind(kind)
        if self._data[kind].pop(doc_id, None) is not None:
            self.touched.add(kind)


class MemoryStore(Store):
    """Process-local store; insertion order is preserved per collection."""

    def __init__(self, data: dict[str, dict[str, Doc]] | None = None) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, Doc]] = {k: {} for k in KINDS}
        for kind, docs in (data or {}).items():
            _check_kind(kind)
            self._data[kind] = {str(i): dict(d) for i, d in docs.items()}
        self._listeners: dict[str, list[Listener]] = {k: [] for k in KINDS}

    def list(self, kind: str) -> list[Doc]:
        _check_kind(kind)
        with self._lock:
            return [_with_id(i, d) for i, d in self._data[kind].items()]

    def get(self, kind: str, doc_id: str) -> Doc | None:
        with self._lock:
            return _MemoryTransaction(self._data).get(kind, doc_id)

    def where(self, kind: str, field: str, value: Any) -> list[Doc]:
        with self._lock:
            return _MemoryTransaction(self._data).where(kind, field, value)

    def subscribe(self, kind: str, callback: Listener) -> Callable[[], None]:
        _check_kind(kind)
        with self._lock:
            self._listeners[kind].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners[kind]:
                    self._listeners[kind].remove(callback)

        return unsubscribe

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        with self._lock:
            staged = copy.deepcopy(self._data)
            txn = _MemoryTransaction(staged)
            result = fn(txn)
            if txn.touched:
                previous, self._data = self._data, staged
                try:
                    self._persist()
                except PersistenceError:
                    self._data = previous
                    raise
            notify = [(k, list(self._listeners[k]), self.list(k)) for k in txn.touched]

        for kind, listeners, docs in notify:
            for listener in listeners:
                listener(docs)
        return result

    def _persist(self) -> None:
        pass


class JsonFileStore(MemoryStore):
    """Local durable variant: the whole store is one JSON file rewritten per commit."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(self._load(path))

    @staticmethod
    def _load(path: str) -> dict[str, dict[str, Doc]]:
        if not os.path.exists(path):
            logger.info("Store file %s not found, starting empty", path)
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as err:
            raise PersistenceError(f"Cannot read store file {path}: {err}") from err

        data = {kind: dict(raw.get(kind) or {}) for kind in KINDS}
        logger.info(
            "Loaded %s: %d bookings, %d packages, %d payments",
            path,
            len(data[BOOKINGS]),
            len(data[PACKAGES]),
            len(data[PAYMENTS]),
        )
        return data

    def _persist(self) -> None:
        folder = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(folder, exist_ok=True)
            # Atomic write
            with tempfile.NamedTemporaryFile(
                "w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp"
            ) as tf:
                json.dump(self._data, tf, ensure_ascii=False, indent=2)
                tmp_name = tf.name
            os.replace(tmp_name, self.path)
        except OSError as err:
            logger.error("Failed to write store file %s: %s", self.path, err)
            raise PersistenceError(f"Cannot write store file {self.path}: {err}") from err


def open_store(settings) -> Store:
    """Build the adapter selected by ``settings.store_backend``."""
    if settings.store_backend == "firestore":
        from trainer_calendar.db import FirestoreStore

        return FirestoreStore(project=settings.gcp_project)
    return JsonFileStore(settings.store_path)
