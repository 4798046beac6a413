"""History stores: MongoDB for the backend, SQLite for local desktop use."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Protocol

from pymongo import DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from .exceptions import NotConnectedError, PersistenceError
from .models import HistoryDay, TranscriptionData, TranscriptionRecord

SCHEMA_VERSION = 1
NOT_CONNECTED = "History store is not connected. Call connect() first."


class HistoryStore(Protocol):
    """Append-only persistence for transcription records."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def insert(self, data: TranscriptionData) -> str:
        """Persist ``data`` and return the identifier assigned to it."""

    def aggregate_by_date(self) -> List[HistoryDay]:
        """Return record counts per day, most recent day first."""

    def query_by_date(self, date: str) -> List[TranscriptionRecord]:
        """Return the records of one day, newest first."""


@contextmanager
def connected(store: HistoryStore) -> Iterator[HistoryStore]:
    store.connect()
    try:
        yield store
    finally:
        store.disconnect()


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLiteHistoryStore:
    """Keep transcription history in a local SQLite database."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        if self._conn is not None:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._ensure_initialised(conn)
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"Failed to open history database {self.db_path}: {exc}") from exc
        self._conn = conn

    def disconnect(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @staticmethod
    def _ensure_initialised(conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transcriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL,
                    duration REAL NOT NULL,
                    cost REAL NOT NULL,
                    timestamp TEXT NOT NULL,
                    date TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_transcriptions_date ON transcriptions(date)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO metadata(key, value) VALUES(?, ?)",
                ("schema_version", str(SCHEMA_VERSION)),
            )

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise NotConnectedError(NOT_CONNECTED)
        return self._conn

    def insert(self, data: TranscriptionData) -> str:
        conn = self._connection()
        try:
            with conn:
                cur = conn.execute(
                    "INSERT INTO transcriptions(text, duration, cost, timestamp, date) VALUES(?, ?, ?, ?, ?)",
                    (
                        data.text,
                        data.duration_seconds,
                        data.cost_usd,
                        _utc(data.timestamp).isoformat(timespec="microseconds"),
                        data.date,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save transcription: {exc}") from exc
        return str(cur.lastrowid)

    def aggregate_by_date(self) -> List[HistoryDay]:
        conn = self._connection()
        try:
            rows = conn.execute(
                "SELECT date, COUNT(*) AS count FROM transcriptions GROUP BY date ORDER BY date DESC"
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to get history days: {exc}") from exc
        return [HistoryDay(date=row["date"], count=row["count"]) for row in rows]

    def query_by_date(self, date: str) -> List[TranscriptionRecord]:
        conn = self._connection()
        try:
            rows = conn.execute(
                "SELECT * FROM transcriptions WHERE date = ? ORDER BY timestamp DESC, id DESC",
                (date,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to get transcriptions: {exc}") from exc
        return [_row_to_record(row) for row in rows]


def _row_to_record(row: sqlite3.Row) -> TranscriptionRecord:
    return TranscriptionRecord(
        id=str(row["id"]),
        text=row["text"],
        duration_seconds=row["duration"],
        cost_usd=row["cost"],
        timestamp=_utc(datetime.fromisoformat(row["timestamp"])),
        date=row["date"],
    )


class MongoHistoryStore:
    """Keep transcription history in a MongoDB collection.

    Documents keep the field names ``text``, ``duration``, ``cost``,
    ``timestamp`` and ``date`` so collections written by earlier clients stay
    readable.
    """

    def __init__(
        self,
        uri: str,
        db_name: str,
        collection_name: str = "transcriptions",
        client_factory: Optional[Callable[..., Any]] = None,
        server_selection_timeout_ms: int = 5000,
    ) -> None:
        self.uri = uri
        self.db_name = db_name
        self.collection_name = collection_name
        self._client_factory = client_factory
        self._timeout_ms = server_selection_timeout_ms
        self._client = None
        self._collection = None

    def connect(self) -> None:
        factory = self._client_factory or MongoClient
        try:
            client = factory(self.uri, tz_aware=True, serverSelectionTimeoutMS=self._timeout_ms)
            client.admin.command("ping")
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to connect to MongoDB: {exc}") from exc
        self._client = client
        self._collection = client[self.db_name][self.collection_name]

    def disconnect(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._collection = None

    def _require_collection(self):
        if self._collection is None:
            raise NotConnectedError(NOT_CONNECTED)
        return self._collection

    def insert(self, data: TranscriptionData) -> str:
        collection = self._require_collection()
        document = {
            "text": data.text,
            "duration": data.duration_seconds,
            "cost": data.cost_usd,
            "timestamp": _utc(data.timestamp),
            "date": data.date,
        }
        try:
            result = collection.insert_one(document)
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to save transcription: {exc}") from exc
        return str(result.inserted_id)

    def aggregate_by_date(self) -> List[HistoryDay]:
        collection = self._require_collection()
        pipeline = [
            {"$group": {"_id": "$date", "count": {"$sum": 1}}},
            {"$sort": {"_id": -1}},
        ]
        try:
            rows = list(collection.aggregate(pipeline))
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to get history days: {exc}") from exc
        return [HistoryDay(date=row["_id"], count=int(row["count"])) for row in rows]

    def query_by_date(self, date: str) -> List[TranscriptionRecord]:
        collection = self._require_collection()
        try:
            documents = list(collection.find({"date": date}).sort("timestamp", DESCENDING))
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to get transcriptions: {exc}") from exc
        return [_document_to_record(document) for document in documents]


def _document_to_record(document: dict) -> TranscriptionRecord:
    return TranscriptionRecord(
        id=str(document["_id"]),
        text=document.get("text", ""),
        duration_seconds=float(document.get("duration") or 0),
        cost_usd=float(document.get("cost") or 0),
        timestamp=_utc(document["timestamp"]),
        date=document["date"],
    )
