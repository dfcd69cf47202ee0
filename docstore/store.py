"""
In-process transactional document store.

Documents live in named collections addressed by slash paths
(``lottery/<flyerId>/claims``). Every committed write bumps a store-wide
version counter; transactions remember the version of each document they
read and refuse to commit if any of them moved in the meantime. The
transaction body is then re-run from scratch, so it must not have side
effects outside the transaction it is given.
"""
import copy
import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from .retry import RetryConfig, calculate_delay

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentStoreError(Exception):
    pass


class DocumentNotFoundError(DocumentStoreError):
    pass


class DocumentExistsError(DocumentStoreError):
    pass


class ReadAfterWriteError(DocumentStoreError):
    """All reads of a transaction must happen before its first write."""


class TransactionConflictError(DocumentStoreError):
    pass


class TransactionAbortedError(DocumentStoreError):
    pass


@dataclass(frozen=True)
class Increment:
    """Field sentinel added to the stored value when the write is applied."""
    value: Any


@dataclass
class DocumentSnapshot:
    collection: str
    id: str
    data: Optional[Dict[str, Any]]
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field, default)


@dataclass
class _Document:
    data: Optional[Dict[str, Any]]
    version: int


@dataclass
class _Write:
    op: str
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None


def collection_path(*parts: str) -> str:
    return "/".join(parts)


def _merge(current: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current)
    for key, value in fields.items():
        if isinstance(value, Increment):
            merged[key] = merged.get(key, 0) + value.value
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class Transaction:
    """A single optimistic attempt. Obtain one through DocumentStore.run_transaction."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._reads: Dict[Tuple[str, str], int] = {}
        self._writes: List[_Write] = []
        self._done = False

    @property
    def has_writes(self) -> bool:
        return bool(self._writes)

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        self._check_open()
        if self._writes:
            raise ReadAfterWriteError(
                f"Cannot read {collection}/{doc_id} after writes were staged in this transaction"
            )
        snapshot = self._store.get(collection, doc_id)
        self._reads.setdefault((collection, doc_id), snapshot.version)
        return snapshot

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._stage(_Write("set", collection, doc_id, data))

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._stage(_Write("create", collection, doc_id, data))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._stage(_Write("update", collection, doc_id, fields))

    def delete(self, collection: str, doc_id: str) -> None:
        self._stage(_Write("delete", collection, doc_id))

    def commit(self) -> None:
        self._check_open()
        self._done = True
        self._store._commit(self._reads, self._writes)

    def _stage(self, write: _Write) -> None:
        self._check_open()
        self._writes.append(write)

    def _check_open(self) -> None:
        if self._done:
            raise DocumentStoreError("Transaction already finished")


class DocumentStore:
    def __init__(self, retry: Optional[RetryConfig] = None, rng: Optional[random.Random] = None):
        self.retry = retry or RetryConfig()
        self.rng = rng or random.Random()
        self._collections: Dict[str, Dict[str, _Document]] = {}
        self._lock = threading.RLock()
        self._version = 0

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    # ---------- Reads ----------

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            if doc is None:
                return DocumentSnapshot(collection, doc_id, None, 0)
            return DocumentSnapshot(collection, doc_id, copy.deepcopy(doc.data), doc.version)

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[DocumentSnapshot]:
        filters = filters or {}
        with self._lock:
            matches = [
                (position, DocumentSnapshot(collection, doc_id, copy.deepcopy(doc.data), doc.version))
                for position, (doc_id, doc) in enumerate(self._collections.get(collection, {}).items())
                if doc.data is not None and all(doc.data.get(k) == v for k, v in filters.items())
            ]

        if order_by:
            # Insertion order breaks ties so newer documents lead in descending order
            matches.sort(key=lambda pair: (pair[1].data.get(order_by), pair[0]), reverse=descending)

        snapshots = [snapshot for _, snapshot in matches][offset:]
        if limit is not None:
            snapshots = snapshots[:limit]
        return snapshots

    # ---------- Single-document writes ----------

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._commit({}, [_Write("set", collection, doc_id, data)])

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._commit({}, [_Write("create", collection, doc_id, data)])

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = self.new_id()
        self.create(collection, doc_id, data)
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._commit({}, [_Write("update", collection, doc_id, fields)])

    def delete(self, collection: str, doc_id: str) -> None:
        self._commit({}, [_Write("delete", collection, doc_id)])

    # ---------- Transactions ----------

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """
        Run ``fn`` inside an optimistic transaction and return its result.

        Write conflicts re-run ``fn`` with a fresh transaction. Any exception
        raised by ``fn`` discards the staged writes and propagates unchanged.
        """
        config = self.retry
        for attempt in range(1, config.max_attempts + 1):
            transaction = Transaction(self)
            result = fn(transaction)
            try:
                transaction.commit()
            except TransactionConflictError as exc:
                if attempt == config.max_attempts:
                    logger.error("Transaction gave up after %d attempts: %s", attempt, exc)
                    raise TransactionAbortedError(
                        f"Transaction aborted after {attempt} conflicting attempts"
                    ) from exc
                delay = calculate_delay(attempt, config, self.rng)
                logger.warning(
                    "Transaction attempt %d/%d conflicted: %s. Retrying in %.3fs",
                    attempt, config.max_attempts, exc, delay,
                )
                time.sleep(delay)
                continue
            return result

        raise TransactionAbortedError("Transaction was not attempted")

    def _version_of(self, collection: str, doc_id: str) -> int:
        doc = self._collections.get(collection, {}).get(doc_id)
        return doc.version if doc is not None else 0

    def _commit(self, reads: Dict[Tuple[str, str], int], writes: List[_Write]) -> None:
        with self._lock:
            for (collection, doc_id), version in reads.items():
                current = self._version_of(collection, doc_id)
                if current != version:
                    raise TransactionConflictError(
                        f"{collection}/{doc_id} changed (read version {version}, now {current})"
                    )

            # Resolve every write first so a failing precondition leaves nothing applied
            staged: Dict[Tuple[str, str], Optional[Dict[str, Any]]] = {}
            for write in writes:
                key = (write.collection, write.doc_id)
                if key in staged:
                    current = staged[key]
                else:
                    doc = self._collections.get(write.collection, {}).get(write.doc_id)
                    current = doc.data if doc is not None else None

                if write.op == "create" and current is not None:
                    raise DocumentExistsError(f"{write.collection}/{write.doc_id} already exists")
                if write.op == "update" and current is None:
                    raise DocumentNotFoundError(f"{write.collection}/{write.doc_id} not found")

                if write.op == "delete":
                    staged[key] = None
                elif write.op == "update":
                    staged[key] = _merge(current, write.data)
                else:
                    staged[key] = _merge({}, write.data)

            for (collection, doc_id), data in staged.items():
                self._version += 1
                self._collections.setdefault(collection, {})[doc_id] = _Document(data, self._version)
