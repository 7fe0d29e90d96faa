"""
Firestore adapter used when ``STORE_BACKEND=firestore``.

Classes
-------
FirestoreStore(project=None, client=None)
    ``Store`` implementation over the ``bookings``, ``packages`` and
    ``payments`` collections.  ``run_transaction`` wraps the body in a
    Firestore transaction (retried automatically on contention), so the
    booking write and the package counter update land together or not at all.

The client is built on construction with Application Default Credentials (ADC), so
the same code runs locally and on Cloud Run.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from google.cloud import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore import transactional
from google.cloud.firestore_v1.base_query import FieldFilter

from trainer_calendar.errors import PersistenceError
from trainer_calendar.store import Doc, Listener, Store, Transaction, _check_kind

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _snapshot_to_doc(snapshot) -> Doc:
    return {"id": snapshot.id, **(snapshot.to_dict() or {})}


class _FirestoreTransaction(Transaction):
    def __init__(self, client: firestore.Client, transaction) -> None:
        self._client = client
        self._txn = transaction

    def _ref(self, kind: str, doc_id: str):
        _check_kind(kind)
        return self._client.collection(kind).document(doc_id)

    def get(self, kind: str, doc_id: str) -> Doc | None:
        snapshot = self._ref(kind, doc_id).get(transaction=self._txn)
        return _snapshot_to_doc(snapshot) if snapshot.exists else None

    def where(self, kind: str, field: str, value: Any) -> list[Doc]:
        _check_kind(kind)
        query = self._client.collection(kind).where(filter=FieldFilter(field, "==", value))
        return [_snapshot_to_doc(s) for s in self._txn.get(query)]

    def set(self, kind: str, doc_id: str, data: Doc) -> None:
        payload = {k: v for k, v in data.items() if k != "id"}
        self._txn.set(self._ref(kind, doc_id), payload)

    def update(self, kind: str, doc_id: str, fields: Doc) -> None:
        self._txn.update(self._ref(kind, doc_id), fields)

    def delete(self, kind: str, doc_id: str) -> None:
        self._txn.delete(self._ref(kind, doc_id))


class FirestoreStore(Store):
    def __init__(self, project: str | None = None, client: firestore.Client | None = None) -> None:
        # project ID inferred from ADC when not given
        self._client = client or firestore.Client(project=project)

    def list(self, kind: str) -> list[Doc]:
        _check_kind(kind)
        try:
            return [_snapshot_to_doc(s) for s in self._client.collection(kind).stream()]
        except gexc.GoogleCloudError as err:  # network / perms
            logger.error("Firestore read of %s failed: %s", kind, err)
            raise PersistenceError(f"Firestore error: {err}") from err

    def get(self, kind: str, doc_id: str) -> Doc | None:
        _check_kind(kind)
        try:
            snapshot = self._client.collection(kind).document(doc_id).get()
        except gexc.GoogleCloudError as err:
            logger.error("Firestore read of %s/%s failed: %s", kind, doc_id, err)
            raise PersistenceError(f"Firestore error: {err}") from err
        return _snapshot_to_doc(snapshot) if snapshot.exists else None

    def where(self, kind: str, field: str, value: Any) -> list[Doc]:
        _check_kind(kind)
        query = self._client.collection(kind).where(filter=FieldFilter(field, "==", value))
        try:
            return [_snapshot_to_doc(s) for s in query.stream()]
        except gexc.GoogleCloudError as err:
            logger.error("Firestore query %s.%s failed: %s", kind, field, err)
            raise PersistenceError(f"Firestore error: {err}") from err

    def subscribe(self, kind: str, callback: Listener) -> Callable[[], None]:
        _check_kind(kind)

        def on_snapshot(col_snapshot, changes, read_time) -> None:
            callback([_snapshot_to_doc(s) for s in col_snapshot])

        watch = self._client.collection(kind).on_snapshot(on_snapshot)
        return watch.unsubscribe

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        # Firestore transactions retry automatically on contention
        @transactional
        def _txn(transaction):
            return fn(_FirestoreTransaction(self._client, transaction))

        try:
            return _txn(self._client.transaction())
        except gexc.GoogleCloudError as err:  # network / perms
            logger.error("Firestore transaction failed: %s", err)
            raise PersistenceError(f"Firestore error: {err}") from err
