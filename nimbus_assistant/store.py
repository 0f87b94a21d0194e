"""
Chat session store using SQLAlchemy.

Persists users, chat sessions and their messages so the UI can list past
conversations and reload their history. Only the minimal shape needed to
pass messages through is stored.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from nimbus_assistant.config import settings
from nimbus_assistant.logger import get_logger

logger = get_logger(__name__)

MESSAGE_TYPES = ("user", "ai")

# Attempts at claiming the next sequence number when writers collide
SEQ_RETRIES = 3

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id VARCHAR(64) PRIMARY KEY,
        name VARCHAR(255),
        email VARCHAR(255),
        created_at VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_sessions (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL REFERENCES users(id),
        title VARCHAR(255) NOT NULL,
        created_at VARCHAR(40) NOT NULL,
        updated_at VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id VARCHAR(64) PRIMARY KEY,
        session_id VARCHAR(64) NOT NULL REFERENCES chat_sessions(id),
        message_type VARCHAR(16) NOT NULL,
        content TEXT NOT NULL,
        source VARCHAR(64),
        confidence FLOAT,
        created_at VARCHAR(40) NOT NULL,
        seq INTEGER NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS messages_session_seq ON messages (session_id, seq)",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class User:
    id: str
    created_at: str
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ChatSession:
    id: str
    user_id: str
    title: str
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChatMessage:
    """
    One stored chat message.

    Attributes:
        session_id: Owning chat session
        message_type: "user" or "ai"
        content: Message text
        source: Source label for assistant answers
        confidence: Confidence for assistant answers
    """
    session_id: str
    message_type: str
    content: str
    source: Optional[str] = None
    confidence: Optional[float] = None
    id: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SessionStore:
    """Thin wrapper around a SQLAlchemy engine for chat persistence."""

    def __init__(self, engine: Optional[Engine] = None, url: Optional[str] = None) -> None:
        self.engine = engine or create_engine(url or settings.database.url, pool_pre_ping=True)
        self._schema_ready = False
        self._schema_lock = threading.Lock()
        logger.info(f"Session store initialized ({self.engine.url.get_backend_name()})")

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            with self.engine.begin() as conn:
                for statement in _SCHEMA:
                    conn.execute(text(statement))
            self._schema_ready = True

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run a write statement; returns the affected row count."""
        self._ensure_schema()
        with self.engine.begin() as conn:
            return conn.execute(text(sql), params or {}).rowcount

    def fetch_one(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        self._ensure_schema()
        with self.engine.connect() as conn:
            row = conn.execute(text(sql), params or {}).mappings().first()
        return dict(row) if row else None

    def fetch_all(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        self._ensure_schema()
        with self.engine.connect() as conn:
            rows = conn.execute(text(sql), params or {}).mappings().all()
        return [dict(r) for r in rows]

    def create_or_get_user(self, user_id: str, name: Optional[str] = None, email: Optional[str] = None) -> User:
        """Return the user with this id, creating it on first use."""
        row = self.fetch_one("SELECT * FROM users WHERE id = :id", {"id": user_id})
        if row:
            return User(**row)

        user = User(id=user_id, name=name, email=email, created_at=_now())
        self.execute(
            "INSERT INTO users (id, name, email, created_at) VALUES (:id, :name, :email, :created_at)",
            asdict(user),
        )
        logger.info(f"Created user {user_id}")
        return user

    def create_chat_session(self, user_id: str, title: str) -> ChatSession:
        """Create a session for a user, creating the user if needed."""
        self.create_or_get_user(user_id)
        now = _now()
        session = ChatSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title.strip() or "New conversation",
            created_at=now,
            updated_at=now,
        )
        self.execute(
            "INSERT INTO chat_sessions (id, user_id, title, created_at, updated_at) "
            "VALUES (:id, :user_id, :title, :created_at, :updated_at)",
            session.to_dict(),
        )
        logger.info(f"Created chat session {session.id} for user {user_id}")
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        row = self.fetch_one("SELECT * FROM chat_sessions WHERE id = :id", {"id": session_id})
        return ChatSession(**row) if row else None

    def save_chat_message(self, message: ChatMessage) -> ChatMessage:
        """
        Append a message to its session and bump the session's updated_at.

        Raises:
            ValueError: If the message type is unknown or the session does not exist
        """
        if message.message_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type '{message.message_type}'")
        if self.get_session(message.session_id) is None:
            raise ValueError(f"Chat session '{message.session_id}' does not exist")

        message.id = message.id or str(uuid.uuid4())
        message.created_at = message.created_at or _now()

        self._ensure_schema()
        for attempt in range(1, SEQ_RETRIES + 1):
            try:
                with self.engine.begin() as conn:
                    seq = self._next_seq(conn, message.session_id)
                    conn.execute(
                        text(
                            "INSERT INTO messages (id, session_id, message_type, content, source, confidence, created_at, seq) "
                            "VALUES (:id, :session_id, :message_type, :content, :source, :confidence, :created_at, :seq)"
                        ),
                        {**message.to_dict(), "seq": seq},
                    )
                    conn.execute(
                        text("UPDATE chat_sessions SET updated_at = :now WHERE id = :id"),
                        {"now": message.created_at, "id": message.session_id},
                    )
                return message
            except IntegrityError:
                if attempt == SEQ_RETRIES:
                    raise
                logger.warning(
                    f"Sequence conflict in session {message.session_id}, "
                    f"retrying ({attempt}/{SEQ_RETRIES})"
                )

    @staticmethod
    def _next_seq(conn: Connection, session_id: str) -> int:
        return conn.execute(
            text("SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE session_id = :session_id"),
            {"session_id": session_id},
        ).scalar_one()

    def get_chat_history(self, session_id: str) -> List[ChatMessage]:
        """Messages of a session, oldest first."""
        rows = self.fetch_all(
            "SELECT id, session_id, message_type, content, source, confidence, created_at "
            "FROM messages WHERE session_id = :session_id ORDER BY seq ASC",
            {"session_id": session_id},
        )
        return [ChatMessage(**row) for row in rows]

    def get_user_sessions(self, user_id: str) -> List[ChatSession]:
        """Sessions of a user, most recently active first."""
        rows = self.fetch_all(
            "SELECT * FROM chat_sessions WHERE user_id = :user_id ORDER BY updated_at DESC, created_at DESC",
            {"user_id": user_id},
        )
        return [ChatSession(**row) for row in rows]
