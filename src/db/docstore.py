"""
Document API over named collections.

Documents are JSON objects addressed by (collection, doc_id). Every returned
document is a plain dict carrying its own "id" plus the "created_at" and
"updated_at" stamps written by the store. Failures of the underlying file are
raised as StoreError.

Writes notify in-process subscriptions after commit. A subscription keeps only
the newest undelivered snapshot, so a slow consumer skips intermediate states
but always ends up with the latest one.
"""

from __future__ import annotations

import asyncio
import json
import secrets
import string
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiosqlite

from db.database import connect
from db.errors import DocumentExists, DocumentNotFound, StoreError
from utils.logger import get_logger

_logger = get_logger(__name__)

Document = Dict[str, Any]

_ID_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 20

# (collection, doc_id) for document watchers, (collection, None) for collection watchers
_subscriptions: Dict[Tuple[str, Optional[str]], List["Subscription"]] = {}


def _now() -> str:
    return datetime.now().isoformat(timespec="microseconds")


def generate_id() -> str:
    """Random 20 character id. Always contains a letter so it never looks like a seed id."""
    while True:
        candidate = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))
        if not candidate.isdigit():
            return candidate


@asynccontextmanager
async def _store_call(action: str):
    try:
        yield
    except StoreError:
        raise
    except (aiosqlite.Error, OSError, json.JSONDecodeError) as e:
        _logger.error(f"Document store {action} failed: {e}")
        raise StoreError(f"{action} failed: {e}") from e


def _row_to_doc(row) -> Document:
    data = json.loads(row["data"])
    data["id"] = row["doc_id"]
    data["created_at"] = row["created_at"]
    data["updated_at"] = row["updated_at"]
    return data


def _strip_meta(data: Document) -> Document:
    return {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}


async def _fetch(conn, collection: str, doc_id: str) -> Optional[Document]:
    cur = await conn.execute(
        """
        SELECT doc_id, data, created_at, updated_at
        FROM documents
        WHERE collection = ? AND doc_id = ?;
        """,
        (collection, doc_id),
    )
    row = await cur.fetchone()
    await cur.close()
    return _row_to_doc(row) if row else None


async def _write(conn, collection: str, doc_id: str, data: Document) -> None:
    now = _now()
    await conn.execute(
        """
        INSERT INTO documents(collection, doc_id, data, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(collection, doc_id)
        DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at;
        """,
        (collection, doc_id, json.dumps(_strip_meta(data)), now, now),
    )


# ---------------------------
# Reads
# ---------------------------


async def get_doc(collection: str, doc_id: str) -> Optional[Document]:
    """Return the document or None if it does not exist."""
    async with _store_call(f"get {collection}/{doc_id}"):
        async with connect() as conn:
            return await _fetch(conn, collection, str(doc_id))


async def list_docs(collection: str) -> List[Document]:
    """All documents of a collection, oldest first."""
    async with _store_call(f"list {collection}"):
        async with connect() as conn:
            cur = await conn.execute(
                """
                SELECT doc_id, data, created_at, updated_at
                FROM documents
                WHERE collection = ?
                ORDER BY created_at, doc_id;
                """,
                (collection,),
            )
            rows = await cur.fetchall()
            await cur.close()
    return [_row_to_doc(r) for r in rows]


async def query(collection: str, field: str, value: Any) -> List[Document]:
    """Documents whose top-level `field` equals `value`, oldest first."""
    async with _store_call(f"query {collection}.{field}"):
        async with connect() as conn:
            cur = await conn.execute(
                """
                SELECT doc_id, data, created_at, updated_at
                FROM documents
                WHERE collection = ? AND json_extract(data, ?) = ?
                ORDER BY created_at, doc_id;
                """,
                (collection, f"$.{field}", value),
            )
            rows = await cur.fetchall()
            await cur.close()
    return [_row_to_doc(r) for r in rows]


# ---------------------------
# Writes
# ---------------------------


async def set_doc(
    collection: str, doc_id: str, data: Document, merge: bool = False
) -> None:
    """Create or overwrite a document; with merge=True only the given fields are replaced."""
    doc_id = str(doc_id)
    async with _store_call(f"set {collection}/{doc_id}"):
        async with connect() as conn:
            payload = dict(data)
            if merge:
                existing = await _fetch(conn, collection, doc_id)
                if existing:
                    payload = {**_strip_meta(existing), **payload}
            await _write(conn, collection, doc_id, payload)
            await conn.commit()
    await _notify(collection, doc_id)


async def update_doc(collection: str, doc_id: str, fields: Document) -> None:
    """Replace the given fields of an existing document; DocumentNotFound if it is missing."""
    doc_id = str(doc_id)
    async with _store_call(f"update {collection}/{doc_id}"):
        async with connect() as conn:
            existing = await _fetch(conn, collection, doc_id)
            if existing is None:
                raise DocumentNotFound(collection, doc_id)
            await _write(conn, collection, doc_id, {**_strip_meta(existing), **fields})
            await conn.commit()
    await _notify(collection, doc_id)


async def create_doc(collection: str, doc_id: str, data: Document) -> None:
    """Insert a document under `doc_id`. DocumentExists if the id is already taken."""
    doc_id = str(doc_id)
    now = _now()
    async with _store_call(f"create {collection}/{doc_id}"):
        async with connect() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO documents(collection, doc_id, data, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    (collection, doc_id, json.dumps(_strip_meta(data)), now, now),
                )
            except aiosqlite.IntegrityError:
                raise DocumentExists(collection, doc_id)
            await conn.commit()
    await _notify(collection, doc_id)


async def add_doc(collection: str, data: Document) -> str:
    """Insert a document under a generated id and return the id."""
    async with _store_call(f"add {collection}"):
        async with connect() as conn:
            while True:
                doc_id = generate_id()
                if await _fetch(conn, collection, doc_id) is None:
                    break
            await _write(conn, collection, doc_id, data)
            await conn.commit()
    await _notify(collection, doc_id)
    return doc_id


async def delete_doc(collection: str, doc_id: str) -> bool:
    """Delete a document. Returns False when there was nothing to delete."""
    doc_id = str(doc_id)
    async with _store_call(f"delete {collection}/{doc_id}"):
        async with connect() as conn:
            cur = await conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?;",
                (collection, doc_id),
            )
            deleted = cur.rowcount > 0
            await cur.close()
            await conn.commit()
    if deleted:
        await _notify(collection, doc_id)
    return deleted


async def mutate_doc(
    collection: str,
    doc_id: str,
    mutator: Callable[[Optional[Document]], Optional[Document]],
) -> Optional[Document]:
    """
    Read-modify-write a document inside one write transaction.

    `mutator` receives the current document (None if missing) and returns the new
    content, or None to leave the document untouched. Exceptions raised by the
    mutator roll the transaction back and propagate unchanged.
    """
    doc_id = str(doc_id)
    written = None
    async with _store_call(f"mutate {collection}/{doc_id}"):
        async with connect() as conn:
            await conn.execute("BEGIN IMMEDIATE;")
            try:
                current = await _fetch(conn, collection, doc_id)
                new_data = mutator(current)
                if new_data is None:
                    await conn.rollback()
                    return None
                await _write(conn, collection, doc_id, new_data)
                await conn.commit()
                written = new_data
            except BaseException:
                await conn.rollback()
                raise
    await _notify(collection, doc_id)
    return written


# ---------------------------
# Subscriptions
# ---------------------------


class Subscription:
    """
    Async iterator over snapshots of a document or a collection query.

    Holds at most one undelivered snapshot; a newer one replaces it.
    """

    def __init__(
        self,
        key: Tuple[str, Optional[str]],
        loader: Callable[[], Awaitable[Any]],
        default: Any = None,
        transform: Optional[Callable[[Any], Any]] = None,
    ):
        self.key = key
        self._loader = loader
        self._default = default
        self._transform = transform
        self._latest: Any = None
        self._pending = False
        self._closed = False
        self._wakeup = asyncio.Event()
        self._close_callbacks: List[Callable[[], Any]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, snapshot: Any) -> None:
        if self._closed:
            return
        self._latest = snapshot
        self._pending = True
        self._wakeup.set()

    async def refresh(self) -> None:
        try:
            snapshot = await self._loader()
        except StoreError as e:
            _logger.warning(f"Subscription {self.key} could not reload: {e}")
            snapshot = self._default
        if self._transform is not None:
            snapshot = self._transform(snapshot)
        self.push(snapshot)

    def latest(self) -> Any:
        """Peek at the newest snapshot without consuming it."""
        return self._latest

    def __aiter__(self):
        return self

    async def __anext__(self):
        while not self._pending:
            if self._closed:
                raise StopAsyncIteration
            await self._wakeup.wait()
            self._wakeup.clear()
        self._pending = False
        return self._latest

    async def next_snapshot(self, timeout: Optional[float] = None):
        return await asyncio.wait_for(self.__anext__(), timeout)

    def add_close_callback(self, callback: Callable[[], Any]) -> None:
        self._close_callbacks.append(callback)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wakeup.set()
        for callback in self._close_callbacks:
            callback()
        subs = _subscriptions.get(self.key)
        if subs and self in subs:
            subs.remove(self)
            if not subs:
                del _subscriptions[self.key]


def register(sub: Subscription) -> None:
    """Track `sub` so writes under its key refresh it and close_all_subscriptions closes it."""
    _subscriptions.setdefault(sub.key, []).append(sub)


async def watch_doc(
    collection: str,
    doc_id: str,
    transform: Optional[Callable[[Any], Any]] = None,
) -> Subscription:
    """Subscribe to one document. The first snapshot is the current state."""
    doc_id = str(doc_id)
    sub = Subscription(
        (collection, doc_id),
        lambda: get_doc(collection, doc_id),
        default=None,
        transform=transform,
    )
    register(sub)
    await sub.refresh()
    return sub


async def watch_collection(
    collection: str,
    where: Optional[Tuple[str, Any]] = None,
    transform: Optional[Callable[[Any], Any]] = None,
) -> Subscription:
    """Subscribe to a whole collection, or to the documents matching where=(field, value)."""
    if where is None:
        loader = lambda: list_docs(collection)  # noqa: E731
    else:
        field, value = where
        loader = lambda: query(collection, field, value)  # noqa: E731
    sub = Subscription((collection, None), loader, default=[], transform=transform)
    register(sub)
    await sub.refresh()
    return sub


async def _notify(collection: str, doc_id: str) -> None:
    targets = list(_subscriptions.get((collection, doc_id), ())) + list(
        _subscriptions.get((collection, None), ())
    )
    for sub in targets:
        await sub.refresh()


def close_all_subscriptions() -> None:
    for subs in list(_subscriptions.values()):
        for sub in list(subs):
            sub.close()
    _subscriptions.clear()
