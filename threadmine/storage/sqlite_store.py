"""
SQLite Message Store

Single SQLite database holding canonical messages, users, channels, raw
payloads, classifications, enrichments and rate limit windows. Every write
is an upsert keyed by a deterministic id, inside its own transaction.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel

from threadmine.errors import PersistenceError
from threadmine.models.classification import Classification, ClassificationType, Enrichment
from threadmine.models.message import (
    Attachment,
    CanonicalMessage,
    Channel,
    CodeBlock,
    SourceType,
    User,
)
from threadmine.models.ratelimit import RateLimitKey, RateLimitState

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    source_type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    author_id TEXT NOT NULL,
    channel_id TEXT NOT NULL,
    thread_id TEXT NOT NULL,
    parent_id TEXT,
    is_thread_root INTEGER NOT NULL DEFAULT 0,
    content TEXT NOT NULL,
    mentions TEXT NOT NULL DEFAULT '[]',
    urls TEXT NOT NULL DEFAULT '[]',
    code_blocks TEXT NOT NULL DEFAULT '[]',
    attachments TEXT NOT NULL DEFAULT '[]',
    source_metadata TEXT NOT NULL DEFAULT '{}',
    fetched_at TEXT,
    normalized_at TEXT,
    schema_version TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id);
CREATE INDEX IF NOT EXISTS idx_messages_channel ON messages(channel_id);
CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    source_type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    display_name TEXT,
    real_name TEXT,
    email TEXT,
    avatar_url TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS channels (
    id TEXT PRIMARY KEY,
    source_type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    name TEXT NOT NULL,
    display_name TEXT,
    type TEXT NOT NULL,
    is_private INTEGER NOT NULL DEFAULT 0,
    parent_space TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS raw_payloads (
    id TEXT PRIMARY KEY,
    source_type TEXT NOT NULL,
    native_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    fetched_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS classifications (
    message_id TEXT NOT NULL,
    type TEXT NOT NULL,
    confidence REAL NOT NULL,
    signals TEXT NOT NULL DEFAULT '[]',
    classified_at TEXT NOT NULL,
    PRIMARY KEY (message_id, type)
);

CREATE TABLE IF NOT EXISTS enrichments (
    message_id TEXT PRIMARY KEY,
    is_question INTEGER NOT NULL DEFAULT 0,
    char_count INTEGER NOT NULL,
    word_count INTEGER NOT NULL,
    has_code INTEGER NOT NULL DEFAULT 0,
    has_links INTEGER NOT NULL DEFAULT 0,
    has_quotes INTEGER NOT NULL DEFAULT 0,
    enriched_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_enrichments_is_question ON enrichments(is_question);
CREATE INDEX IF NOT EXISTS idx_enrichments_has_code ON enrichments(has_code);

CREATE TABLE IF NOT EXISTS rate_limits (
    source_type TEXT NOT NULL,
    workspace_id TEXT NOT NULL DEFAULT '',
    endpoint TEXT NOT NULL,
    requests_made INTEGER NOT NULL DEFAULT 0,
    window_start TEXT NOT NULL,
    window_duration INTEGER NOT NULL,
    max_requests INTEGER NOT NULL,
    safety_limit INTEGER NOT NULL,
    PRIMARY KEY (source_type, workspace_id, endpoint)
);
"""


ENRICHMENT_FILTERS = ("is_question", "has_code", "has_links", "has_quotes")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class MessageQuery(BaseModel):
    """Filters for query_messages; unset fields do not filter."""

    source_type: Optional[SourceType] = None
    channel_id: Optional[str] = None
    thread_id: Optional[str] = None
    author_id: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    classification: Optional[ClassificationType] = None
    is_question: Optional[bool] = None
    has_code: Optional[bool] = None
    has_links: Optional[bool] = None
    has_quotes: Optional[bool] = None
    limit: int = 100
    offset: int = 0


class MessageStore:
    """SQLite persistence for ThreadMine records."""

    def __init__(self, db_path: str):
        if db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            db_path = str(Path(db_path).expanduser())

        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        if db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(SCHEMA)
        logger.debug(f"Opened message store at {db_path}")

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        try:
            with self.conn:
                yield self.conn
        except sqlite3.Error as e:
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Failed to {action}: {e}") from e

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def save_message(self, msg: CanonicalMessage) -> None:
        """
        Upsert a canonical message.

        On conflict only content-derived columns change; the id, thread
        structure and timestamp of a message are fixed once stored.
        """
        with self._transaction(f"save message {msg.id}") as conn:
            conn.execute(
                """
                INSERT INTO messages (
                    id, source_type, source_id, timestamp, author_id, channel_id,
                    thread_id, parent_id, is_thread_root, content, mentions, urls,
                    code_blocks, attachments, source_metadata, fetched_at,
                    normalized_at, schema_version
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    content = excluded.content,
                    mentions = excluded.mentions,
                    urls = excluded.urls,
                    code_blocks = excluded.code_blocks,
                    attachments = excluded.attachments,
                    source_metadata = excluded.source_metadata,
                    fetched_at = excluded.fetched_at,
                    normalized_at = excluded.normalized_at,
                    schema_version = excluded.schema_version
                """,
                (
                    msg.id,
                    msg.source_type.value,
                    msg.source_id,
                    _iso(msg.timestamp),
                    msg.author_id,
                    msg.channel_id,
                    msg.thread_id,
                    msg.parent_id,
                    int(msg.is_thread_root),
                    msg.content,
                    json.dumps(sorted(msg.mentions)),
                    json.dumps(msg.urls),
                    json.dumps([b.model_dump(mode="json") for b in msg.code_blocks]),
                    json.dumps([a.model_dump(mode="json") for a in msg.attachments]),
                    json.dumps(msg.source_metadata, default=str),
                    _iso(msg.fetched_at),
                    _iso(msg.normalized_at),
                    msg.schema_version,
                ),
            )

    def _row_to_message(self, row: sqlite3.Row) -> CanonicalMessage:
        return CanonicalMessage(
            id=row["id"],
            source_type=SourceType(row["source_type"]),
            source_id=row["source_id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            author_id=row["author_id"],
            content=row["content"],
            channel_id=row["channel_id"],
            thread_id=row["thread_id"],
            parent_id=row["parent_id"],
            is_thread_root=bool(row["is_thread_root"]),
            mentions=set(json.loads(row["mentions"])),
            urls=json.loads(row["urls"]),
            code_blocks=[CodeBlock(**b) for b in json.loads(row["code_blocks"])],
            attachments=[Attachment(**a) for a in json.loads(row["attachments"])],
            source_metadata=json.loads(row["source_metadata"]),
            fetched_at=datetime.fromisoformat(row["fetched_at"]) if row["fetched_at"] else None,
            normalized_at=(
                datetime.fromisoformat(row["normalized_at"]) if row["normalized_at"] else None
            ),
            schema_version=row["schema_version"],
        )

    def get_message(self, message_id: str) -> Optional[CanonicalMessage]:
        row = self.conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return self._row_to_message(row) if row else None

    def query_messages(self, query: Optional[MessageQuery] = None) -> List[CanonicalMessage]:
        """Messages matching the filters, oldest first."""
        query = query or MessageQuery()
        clauses: List[str] = []
        params: List[Any] = []

        if query.source_type is not None:
            clauses.append("m.source_type = ?")
            params.append(query.source_type.value)
        if query.channel_id:
            clauses.append("m.channel_id = ?")
            params.append(query.channel_id)
        if query.thread_id:
            clauses.append("m.thread_id = ?")
            params.append(query.thread_id)
        if query.author_id:
            clauses.append("m.author_id = ?")
            params.append(query.author_id)
        if query.since is not None:
            clauses.append("m.timestamp >= ?")
            params.append(_iso(query.since))
        if query.until is not None:
            clauses.append("m.timestamp <= ?")
            params.append(_iso(query.until))
        if query.classification is not None:
            clauses.append(
                "EXISTS (SELECT 1 FROM classifications c WHERE c.message_id = m.id AND c.type = ?)"
            )
            params.append(query.classification.value)
        for column in ENRICHMENT_FILTERS:
            value = getattr(query, column)
            if value is not None:
                clauses.append(f"e.{column} = ?")
                params.append(int(value))

        sql = "SELECT m.* FROM messages m"
        if any(getattr(query, column) is not None for column in ENRICHMENT_FILTERS):
            # messages never enriched match neither True nor False
            sql += " LEFT JOIN enrichments e ON e.message_id = m.id"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY m.timestamp, m.id"
        if query.limit > 0:
            sql += " LIMIT ? OFFSET ?"
            params.extend([query.limit, query.offset])

        rows = self.conn.execute(sql, params).fetchall()
        return [self._row_to_message(row) for row in rows]

    def all_messages(self) -> List[CanonicalMessage]:
        return self.query_messages(MessageQuery(limit=0))

    def count_messages(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]

    # ------------------------------------------------------------------
    # Users, channels, raw payloads
    # ------------------------------------------------------------------

    def save_user(self, user: User) -> None:
        with self._transaction(f"save user {user.id}") as conn:
            conn.execute(
                """
                INSERT INTO users (id, source_type, source_id, display_name, real_name,
                                   email, avatar_url, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    display_name = COALESCE(excluded.display_name, users.display_name),
                    real_name = COALESCE(excluded.real_name, users.real_name),
                    email = COALESCE(excluded.email, users.email),
                    avatar_url = COALESCE(excluded.avatar_url, users.avatar_url),
                    updated_at = excluded.updated_at
                """,
                (
                    user.id,
                    user.source_type.value,
                    user.source_id,
                    user.display_name,
                    user.real_name,
                    user.email,
                    user.avatar_url,
                    _now(),
                ),
            )

    def get_user(self, user_id: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return User(**{k: row[k] for k in row.keys() if k != "updated_at"})

    def save_channel(self, channel: Channel) -> None:
        with self._transaction(f"save channel {channel.id}") as conn:
            conn.execute(
                """
                INSERT INTO channels (id, source_type, source_id, name, display_name, type,
                                      is_private, parent_space, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    display_name = COALESCE(excluded.display_name, channels.display_name),
                    is_private = excluded.is_private,
                    parent_space = COALESCE(excluded.parent_space, channels.parent_space),
                    updated_at = excluded.updated_at
                """,
                (
                    channel.id,
                    channel.source_type.value,
                    channel.source_id,
                    channel.name,
                    channel.display_name,
                    channel.type,
                    int(channel.is_private),
                    channel.parent_space,
                    _now(),
                ),
            )

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        row = self.conn.execute("SELECT * FROM channels WHERE id = ?", (channel_id,)).fetchone()
        if row is None:
            return None
        data = {k: row[k] for k in row.keys() if k != "updated_at"}
        data["is_private"] = bool(data["is_private"])
        return Channel(**data)

    def save_raw_payload(
        self, message_id: str, source_type: str, native_id: str, payload: Dict[str, Any]
    ) -> None:
        """Keep the native payload next to the canonical record it produced."""
        with self._transaction(f"save raw payload {message_id}") as conn:
            conn.execute(
                """
                INSERT INTO raw_payloads (id, source_type, native_id, payload, fetched_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    payload = excluded.payload,
                    fetched_at = excluded.fetched_at
                """,
                (message_id, source_type, native_id, json.dumps(payload, default=str), _now()),
            )

    def get_raw_payload(self, message_id: str) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(
            "SELECT payload FROM raw_payloads WHERE id = ?", (message_id,)
        ).fetchone()
        return json.loads(row["payload"]) if row else None

    # ------------------------------------------------------------------
    # Classifications
    # ------------------------------------------------------------------

    def save_classification(self, classification: Classification) -> None:
        with self._transaction(f"save classification for {classification.message_id}") as conn:
            conn.execute(
                """
                INSERT INTO classifications (message_id, type, confidence, signals, classified_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(message_id, type) DO UPDATE SET
                    confidence = excluded.confidence,
                    signals = excluded.signals,
                    classified_at = excluded.classified_at
                """,
                (
                    classification.message_id,
                    classification.type.value,
                    classification.confidence,
                    json.dumps(classification.signals),
                    _now(),
                ),
            )

    def replace_classifications(
        self, message_id: str, classifications: List[Classification]
    ) -> None:
        """
        Swap in this run's labels for a message.

        Labels the message no longer earns are removed; an empty list clears
        them all. Delete and insert share one transaction.
        """
        classified_at = _now()
        with self._transaction(f"replace classifications for {message_id}") as conn:
            conn.execute("DELETE FROM classifications WHERE message_id = ?", (message_id,))
            conn.executemany(
                """
                INSERT INTO classifications (message_id, type, confidence, signals, classified_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        message_id,
                        c.type.value,
                        c.confidence,
                        json.dumps(c.signals),
                        classified_at,
                    )
                    for c in classifications
                ],
            )

    def get_classifications(self, message_id: str) -> List[Classification]:
        rows = self.conn.execute(
            "SELECT * FROM classifications WHERE message_id = ? ORDER BY type",
            (message_id,),
        ).fetchall()
        return [
            Classification(
                message_id=row["message_id"],
                type=ClassificationType(row["type"]),
                confidence=row["confidence"],
                signals=json.loads(row["signals"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Enrichments
    # ------------------------------------------------------------------

    def save_enrichment(self, enrichment: Enrichment) -> None:
        with self._transaction(f"save enrichment for {enrichment.message_id}") as conn:
            conn.execute(
                """
                INSERT INTO enrichments (message_id, is_question, char_count, word_count,
                                         has_code, has_links, has_quotes, enriched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(message_id) DO UPDATE SET
                    is_question = excluded.is_question,
                    char_count = excluded.char_count,
                    word_count = excluded.word_count,
                    has_code = excluded.has_code,
                    has_links = excluded.has_links,
                    has_quotes = excluded.has_quotes,
                    enriched_at = excluded.enriched_at
                """,
                (
                    enrichment.message_id,
                    int(enrichment.is_question),
                    enrichment.char_count,
                    enrichment.word_count,
                    int(enrichment.has_code),
                    int(enrichment.has_links),
                    int(enrichment.has_quotes),
                    _now(),
                ),
            )

    def get_enrichment(self, message_id: str) -> Optional[Enrichment]:
        row = self.conn.execute(
            "SELECT * FROM enrichments WHERE message_id = ?", (message_id,)
        ).fetchone()
        if row is None:
            return None
        return Enrichment(
            message_id=row["message_id"],
            is_question=bool(row["is_question"]),
            char_count=row["char_count"],
            word_count=row["word_count"],
            has_code=bool(row["has_code"]),
            has_links=bool(row["has_links"]),
            has_quotes=bool(row["has_quotes"]),
        )

    # ------------------------------------------------------------------
    # Rate limits (RateLimitStore)
    # ------------------------------------------------------------------

    @staticmethod
    def _key_params(key: RateLimitKey) -> tuple:
        return (key.source_type, key.workspace_id or "", key.endpoint)

    def init_rate_limit(self, state: RateLimitState) -> None:
        with self._transaction(f"init rate limit {state.key}") as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO rate_limits (
                    source_type, workspace_id, endpoint, requests_made, window_start,
                    window_duration, max_requests, safety_limit
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    *self._key_params(state.key),
                    state.requests_made,
                    _iso(state.window_start),
                    state.window_duration,
                    state.max_requests,
                    state.safety_limit,
                ),
            )

    def get_rate_limit(self, key: RateLimitKey) -> Optional[RateLimitState]:
        row = self.conn.execute(
            """
            SELECT * FROM rate_limits
            WHERE source_type = ? AND workspace_id = ? AND endpoint = ?
            """,
            self._key_params(key),
        ).fetchone()
        if row is None:
            return None
        return RateLimitState(
            key=key,
            requests_made=row["requests_made"],
            window_start=datetime.fromisoformat(row["window_start"]),
            window_duration=row["window_duration"],
            max_requests=row["max_requests"],
            safety_limit=row["safety_limit"],
        )

    def record_request(self, key: RateLimitKey) -> None:
        with self._transaction(f"record request for {key}") as conn:
            conn.execute(
                """
                UPDATE rate_limits SET requests_made = requests_made + 1
                WHERE source_type = ? AND workspace_id = ? AND endpoint = ?
                """,
                self._key_params(key),
            )

    def reset_window(self, key: RateLimitKey, window_start: datetime) -> None:
        with self._transaction(f"reset rate limit window for {key}") as conn:
            conn.execute(
                """
                UPDATE rate_limits SET requests_made = 0, window_start = ?
                WHERE source_type = ? AND workspace_id = ? AND endpoint = ?
                """,
                (_iso(window_start), *self._key_params(key)),
            )
