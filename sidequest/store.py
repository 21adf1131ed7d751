"""
Document store layer for SideQuest.

Documents are JSON-compatible dicts addressed by (collection, id). Two
backends share one interface:

- ``MemoryStore`` keeps everything in process memory.
- ``SheetsStore`` keeps one Google Sheets worksheet per collection, with
  retry logic for Sheets API rate limits.

Every committed write bumps a document version. Transactions record the
versions they read and refuse to commit when any of them moved, which is what
lets multi-document updates (quest + users) behave as one logical write.
Listeners registered with ``subscribe`` are called after each commit.
"""

from __future__ import annotations

import copy
import inspect
import json
import logging
import threading
import time
import uuid
import weakref
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Callable

import gspread
from gspread.utils import rowcol_to_a1

from sidequest.errors import (
    ConflictError,
    DocumentNotFound,
    RateLimitError,
    StoreUnavailable,
)

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict | None], None]


def retry_with_backoff(func: Callable, max_attempts: int = 3) -> Any:
    """
    Retry a function with exponential backoff for rate limit errors.

    Implements exponential backoff: 1s, 2s, 4s between attempts.

    Args:
        func: The function to retry (should be a callable with no arguments)
        max_attempts: Maximum number of retry attempts (default: 3)

    Returns:
        The return value of the successful function call

    Raises:
        RateLimitError: If all retry attempts fail with rate limit errors
        StoreUnavailable: If the function fails with a non-rate-limit error
    """
    for attempt in range(max_attempts):
        try:
            return func()
        except Exception as e:
            error_msg = str(e).lower()
            is_rate_limit = ('rate limit' in error_msg or
                           'quota' in error_msg or
                           '429' in error_msg)

            if is_rate_limit:
                if attempt == max_attempts - 1:
                    raise RateLimitError(f"Rate limit exceeded after {max_attempts} attempts") from e

                wait_time = 2 ** attempt
                logger.warning(f"Sheets rate limit hit, retrying in {wait_time}s")
                time.sleep(wait_time)
            else:
                raise StoreUnavailable(f"Database operation failed: {e}") from e

    raise RateLimitError(f"Rate limit exceeded after {max_attempts} attempts")


def _with_id(doc_id: str, data: dict) -> dict:
    return {'id': doc_id, **data}


def _without_id(data: dict) -> dict:
    return {k: v for k, v in data.items() if k != 'id'}


def _strong_ref(listener: Listener) -> Callable[[], Listener]:
    return lambda: listener


def _weak_ref(listener: Listener) -> Callable[[], Listener | None]:
    if inspect.ismethod(listener):
        return weakref.WeakMethod(listener)
    return weakref.ref(listener)


@dataclass
class Write:
    """A pending write; ``data=None`` deletes the document."""

    collection: str
    doc_id: str
    data: dict | None


class Subscription:
    """Handle returned by ``DocumentStore.subscribe``."""

    def __init__(self, store: 'DocumentStore', key: tuple[str, str | None], listener: Listener):
        self._store = store
        self._key = key
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._remove_listener(self._key, self._listener)


class Transaction:
    """
    Buffered reads and writes committed atomically by the store.

    Reads see the transaction's own pending writes. ``commit`` raises
    ``ConflictError`` if any document read here changed in the meantime.
    """

    def __init__(self, store: 'DocumentStore'):
        self._store = store
        self._reads: dict[tuple[str, str], int] = {}
        self._writes: dict[tuple[str, str], dict | None] = {}
        # Documents already fetched, so repeated reads stay off the backend
        self._seen: dict[tuple[str, str], dict | None] = {}
        self._listed: set[str] = set()

    def get(self, collection: str, doc_id: str) -> dict | None:
        key = (collection, doc_id)
        if key in self._writes:
            data = self._writes[key]
        elif key in self._seen or collection in self._listed:
            data = self._seen.get(key)
            self._reads.setdefault(key, 0)
        else:
            data, version = self._store._read(collection, doc_id)
            self._reads.setdefault(key, version)
            self._seen[key] = data
        return None if data is None else _with_id(doc_id, copy.deepcopy(data))

    def list(self, collection: str) -> list[dict]:
        docs = {}
        for doc_id, data, version in self._store._scan(collection):
            self._reads.setdefault((collection, doc_id), version)
            self._seen.setdefault((collection, doc_id), copy.deepcopy(data))
            docs[doc_id] = data
        self._listed.add(collection)
        for (coll, doc_id), data in self._writes.items():
            if coll != collection:
                continue
            if data is None:
                docs.pop(doc_id, None)
            else:
                docs[doc_id] = copy.deepcopy(data)
        return [_with_id(doc_id, data) for doc_id, data in docs.items()]

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self._writes[(collection, doc_id)] = copy.deepcopy(_without_id(data))

    def update(self, collection: str, doc_id: str, changes: dict) -> dict:
        current = self.get(collection, doc_id)
        if current is None:
            raise DocumentNotFound(collection, doc_id)
        merged = {**_without_id(current), **copy.deepcopy(_without_id(changes))}
        self._writes[(collection, doc_id)] = merged
        return _with_id(doc_id, merged)

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes[(collection, doc_id)] = None

    def commit(self) -> None:
        writes = [Write(coll, doc_id, data) for (coll, doc_id), data in self._writes.items()]
        self._store._commit(writes, self._reads)


class DocumentStore:
    """
    Base class for document stores.

    Backends implement ``_read``, ``_scan`` and ``_apply``; everything else
    (merging, versions checks, transactions, listeners) lives here.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._listeners: dict[tuple[str, str | None], list[Callable[[], Listener | None]]] = {}

    # Backend primitives

    def _read(self, collection: str, doc_id: str) -> tuple[dict | None, int]:
        """Return (data, version); version is 0 for a missing document."""
        raise NotImplementedError

    def _scan(self, collection: str) -> list[tuple[str, dict, int]]:
        raise NotImplementedError

    def _apply(self, writes: list[Write]) -> None:
        """Persist writes. Called with the store lock held."""
        raise NotImplementedError

    # Reads

    def get(self, collection: str, doc_id: str) -> dict | None:
        """Fetch a document (with its ``id``) or None if it doesn't exist."""
        data, _ = self._read(collection, doc_id)
        return None if data is None else _with_id(doc_id, data)

    def list(self, collection: str) -> list[dict]:
        """Fetch every document of a collection, in storage order."""
        return [_with_id(doc_id, data) for doc_id, data, _ in self._scan(collection)]

    # Writes

    def add(self, collection: str, data: dict) -> str:
        """Insert a document under a generated id and return the id."""
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or overwrite a document."""
        self._commit([Write(collection, doc_id, copy.deepcopy(_without_id(data)))])

    def update(self, collection: str, doc_id: str, changes: dict) -> dict:
        """
        Merge top-level fields into an existing document.

        Raises:
            DocumentNotFound: If the document doesn't exist
        """
        with self._lock:
            current, _ = self._read(collection, doc_id)
            if current is None:
                raise DocumentNotFound(collection, doc_id)
            merged = {**current, **copy.deepcopy(_without_id(changes))}
            self._commit([Write(collection, doc_id, merged)])
        return _with_id(doc_id, merged)

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it didn't exist."""
        with self._lock:
            current, _ = self._read(collection, doc_id)
            if current is None:
                return False
            self._commit([Write(collection, doc_id, None)])
        return True

    # Transactions

    def transaction(self) -> Transaction:
        return Transaction(self)

    def run_transaction(self, fn: Callable[[Transaction], Any], max_attempts: int = 5) -> Any:
        """
        Run ``fn`` inside a transaction, re-running it on version conflicts.

        Errors raised by ``fn`` propagate and nothing is written.

        Raises:
            ConflictError: If every attempt lost a race with another writer
        """
        for attempt in range(max_attempts):
            txn = Transaction(self)
            result = fn(txn)
            try:
                txn.commit()
            except ConflictError:
                logger.info(f"Transaction conflict, attempt {attempt + 1} of {max_attempts}")
                continue
            return result
        raise ConflictError(f"Transaction aborted after {max_attempts} conflicting attempts")

    def _commit(self, writes: list[Write], expected: dict[tuple[str, str], int] | None = None) -> None:
        if not writes:
            return
        with self._lock:
            self._check_versions(expected or {})
            self._apply(writes)
        self._notify(writes)

    def _check_versions(self, expected: dict[tuple[str, str], int]) -> None:
        """Compare recorded versions against one scan per collection."""
        by_collection: dict[str, dict[str, int]] = {}
        for (collection, doc_id), version in expected.items():
            by_collection.setdefault(collection, {})[doc_id] = version

        for collection, wanted in by_collection.items():
            current = {doc_id: version for doc_id, _, version in self._scan(collection)}
            for doc_id, version in wanted.items():
                if current.get(doc_id, 0) != version:
                    raise ConflictError(f"Document '{collection}/{doc_id}' changed during transaction")

    # Subscriptions

    def subscribe(self, collection: str, listener: Listener, doc_id: str | None = None,
                  weak: bool = False) -> Subscription:
        """
        Register a listener for committed writes.

        The listener receives ``(doc_id, snapshot)`` where snapshot is the new
        document (with ``id``) or None after a delete. Without ``doc_id`` the
        listener sees every document of the collection.

        A document listener is dropped once it has been told about the
        document's deletion. With ``weak=True`` the store only keeps a weak
        reference: the listener lives as long as the returned ``Subscription``
        (or the caller) holds it, and is dropped after being collected.
        """
        key = (collection, doc_id)
        ref = _weak_ref(listener) if weak else _strong_ref(listener)
        with self._lock:
            self._listeners.setdefault(key, []).append(ref)
        return Subscription(self, key, listener)

    def _remove_listener(self, key: tuple[str, str | None], listener: Listener) -> None:
        with self._lock:
            refs = self._listeners.get(key, [])
            kept = []
            for ref in refs:
                target = ref()
                if target is not None and target != listener:
                    kept.append(ref)
            refs[:] = kept
            if not refs:
                self._listeners.pop(key, None)

    def _live_listeners(self, key: tuple[str, str | None]) -> list[Listener]:
        """Resolve the listeners under ``key``, pruning collected ones. Lock held."""
        refs = self._listeners.get(key)
        if refs is None:
            return []
        live, kept = [], []
        for ref in refs:
            listener = ref()
            if listener is not None:
                live.append(listener)
                kept.append(ref)
        refs[:] = kept
        if not refs:
            self._listeners.pop(key, None)
        return live

    def _notify(self, writes: list[Write]) -> None:
        for write in writes:
            doc_key = (write.collection, write.doc_id)
            with self._lock:
                listeners = self._live_listeners(doc_key) + self._live_listeners((write.collection, None))
                if write.data is None:
                    self._listeners.pop(doc_key, None)
            for listener in listeners:
                snapshot = None if write.data is None else _with_id(write.doc_id, copy.deepcopy(write.data))
                try:
                    listener(write.doc_id, snapshot)
                except Exception:
                    logger.exception(f"Listener failed for {write.collection}/{write.doc_id}")


class MemoryStore(DocumentStore):
    """In-process store; versions come from one store-wide counter."""

    def __init__(self):
        super().__init__()
        self._collections: dict[str, dict[str, tuple[dict, int]]] = {}
        self._sequence = 0

    def _read(self, collection, doc_id):
        with self._lock:
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                return None, 0
            data, version = entry
            return copy.deepcopy(data), version

    def _scan(self, collection):
        with self._lock:
            docs = list(self._collections.get(collection, {}).items())
            return [(doc_id, copy.deepcopy(data), version) for doc_id, (data, version) in docs]

    def _apply(self, writes):
        for write in writes:
            docs = self._collections.setdefault(write.collection, {})
            if write.data is None:
                docs.pop(write.doc_id, None)
            else:
                self._sequence += 1
                docs[write.doc_id] = (copy.deepcopy(write.data), self._sequence)


# Worksheet columns (1-indexed in gspread)
SHEET_HEADER = ['Doc_Id', 'Version', 'Data', 'Updated_At']
VERSION_COL = 2
UPDATED_COL = 4


class SheetsStore(DocumentStore):
    """
    Google Sheets backed store: one worksheet per collection, one row per
    document, the document body kept as JSON in the ``Data`` column.

    Version checks are enforced under this process's lock only; writers in
    other processes still get last-writer-wins.
    """

    def __init__(self, spreadsheet, max_attempts: int = 3):
        super().__init__()
        self.spreadsheet = spreadsheet
        self.max_attempts = max_attempts
        self._worksheets: dict[str, Any] = {}

    @classmethod
    def from_service_account(cls, credentials_info: dict, spreadsheet_id: str) -> 'SheetsStore':
        """Open a spreadsheet with service account credentials."""
        from google.oauth2.service_account import Credentials

        scopes = [
            "https://www.googleapis.com/auth/spreadsheets",
            "https://www.googleapis.com/auth/drive"
        ]
        credentials = Credentials.from_service_account_info(
            dict(credentials_info),
            scopes=scopes
        )
        client = gspread.authorize(credentials)
        spreadsheet = retry_with_backoff(lambda: client.open_by_key(spreadsheet_id))
        return cls(spreadsheet)

    def _retry(self, func: Callable) -> Any:
        return retry_with_backoff(func, max_attempts=self.max_attempts)

    def _worksheet(self, collection: str):
        if collection in self._worksheets:
            return self._worksheets[collection]

        def _open():
            try:
                return self.spreadsheet.worksheet(collection)
            except gspread.exceptions.WorksheetNotFound:
                worksheet = self.spreadsheet.add_worksheet(
                    title=collection, rows=1000, cols=len(SHEET_HEADER)
                )
                worksheet.append_row(SHEET_HEADER)
                logger.info(f"Created worksheet for collection '{collection}'")
                return worksheet

        worksheet = self._retry(_open)
        self._worksheets[collection] = worksheet
        return worksheet

    def _records(self, collection: str) -> list[dict]:
        worksheet = self._worksheet(collection)
        return self._retry(lambda: worksheet.get_all_records(numericise_ignore=['all']))

    def _read(self, collection, doc_id):
        for record in self._records(collection):
            if str(record.get('Doc_Id')) == doc_id:
                return json.loads(record['Data']), int(record.get('Version') or 0)
        return None, 0

    def _scan(self, collection):
        return [
            (str(record['Doc_Id']), json.loads(record['Data']), int(record.get('Version') or 0))
            for record in self._records(collection)
            if record.get('Doc_Id')
        ]

    def _apply(self, writes):
        # One fetch per collection; (doc_id, version) per data row, in sheet order
        rows: dict[str, list[list]] = {}
        for write in writes:
            if write.collection not in rows:
                rows[write.collection] = [
                    [str(record.get('Doc_Id')), int(record.get('Version') or 0)]
                    for record in self._records(write.collection)
                ]

        for write in writes:
            worksheet = self._worksheet(write.collection)
            sheet_rows = rows[write.collection]

            # +2 for header row and 1-indexing
            idx = next((i for i, row in enumerate(sheet_rows) if row[0] == write.doc_id), None)
            row_num = None if idx is None else idx + 2
            timestamp = datetime.now(UTC).isoformat().replace('+00:00', 'Z')

            if write.data is None:
                if row_num is not None:
                    self._retry(lambda: worksheet.delete_rows(row_num))
                    del sheet_rows[idx]
            elif row_num is None:
                body = json.dumps(write.data)
                self._retry(lambda: worksheet.append_row([write.doc_id, 1, body, timestamp]))
                sheet_rows.append([write.doc_id, 1])
            else:
                body = json.dumps(write.data)
                version = sheet_rows[idx][1] + 1
                # Version, Data and Updated_At land in one request
                self._retry(lambda: worksheet.update(
                    range_name=f"{rowcol_to_a1(row_num, VERSION_COL)}:{rowcol_to_a1(row_num, UPDATED_COL)}",
                    values=[[version, body, timestamp]],
                ))
                sheet_rows[idx][1] = version
