"""
Session Manager
----------------
Owns every write to the ephemeral session tables.

Each session id gets its own in-memory table (session_context_<id>); the
default session without an id uses the bare session_context table. Tables
are created on the first train() call and dropped entirely by clear().
"""
from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from statute_navigator.embedding.embedder import Embedder
from statute_navigator.embedding.faiss_index import VectorStore
from statute_navigator.schemas import EmbeddedRecord
from statute_navigator.utils.helpers import safe_name

SESSION_TABLE = "session_context"


class SessionManager:
    def __init__(self, store: VectorStore, embedder: Embedder, table_prefix: str = SESSION_TABLE) -> None:
        self.store = store
        self.embedder = embedder
        self.table_prefix = table_prefix
        self._lock = threading.Lock()

    def table_for(self, session_id: Optional[str] = None) -> str:
        """Table name backing a session."""
        if not session_id:
            return self.table_prefix
        suffix = safe_name(session_id)
        if not suffix:
            raise ValueError(f"Session id {session_id!r} has no usable characters")
        return f"{self.table_prefix}_{suffix}"

    def train(self, text: str, source_name: str, session_id: Optional[str] = None) -> EmbeddedRecord:
        """Embed text and append it to the session table, creating it on first use."""
        if not text.strip():
            raise ValueError("Cannot train a session on empty text")

        vector = self.embedder.embed_query(text)
        record = EmbeddedRecord(text=text, source=source_name, vector=vector)
        table_name = self.table_for(session_id)

        with self._lock:
            table = self.store.add(table_name, [record], persist=False)

        logger.info(f"[SessionManager] '{source_name}' added to '{table_name}' ({table.count} rows)")
        return record

    def clear(self, session_id: Optional[str] = None) -> bool:
        """
        Drop the session table. Idempotent: clearing a session that was never
        trained succeeds and returns False.
        """
        table_name = self.table_for(session_id)
        with self._lock:
            dropped = self.store.drop_table(table_name)
        logger.info(f"[SessionManager] Session '{table_name}' cleared (existed={dropped})")
        return dropped

    def exists(self, session_id: Optional[str] = None) -> bool:
        return self.store.has_table(self.table_for(session_id))
