"""
Process-wide service context.

Owns the long-lived VectorStore handle and the Embedder so they can be
injected into the retriever, session manager and ingestion pipeline instead
of living as module globals. Acquired with open() at start, released with
close() at shutdown; statute_table() reloads the
table from disk when the cached handle has gone stale.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger

from statute_navigator.config import AppConfig
from statute_navigator.embedding.embedder import Embedder
from statute_navigator.embedding.faiss_index import VectorStore, VectorTable
from statute_navigator.errors import ConfigurationError


class ServiceContext:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        store: Optional[VectorStore] = None,
        embedder: Optional[Embedder] = None,
    ) -> None:
        self.config = config or AppConfig()
        self._store = store
        self.embedder = embedder or Embedder(
            model=self.config.embedding.model,
            dimensions=self.config.embedding.dimensions,
            request_timeout=self.config.embedding.request_timeout,
        )

    def __enter__(self) -> "ServiceContext":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> "ServiceContext":
        if self._store is None:
            self._store = VectorStore.connect(Path(self.config.storage.index_dir))
        return self

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None

    @property
    def store(self) -> VectorStore:
        """The store handle; reconnects lazily if it was closed."""
        if self._store is None:
            logger.warning("[ServiceContext] Store handle missing, reconnecting")
            self.open()
        return self._store

    def statute_table(self) -> VectorTable:
        """Open the statute table, reconnecting once if the handle is stale."""
        name = self.config.storage.statute_table
        try:
            return self.store.open_table(name)
        except ConfigurationError:
            logger.warning(f"[ServiceContext] '{name}' not reachable, re-acquiring store handle")
            self.store.refresh()
            return self.store.open_table(name)
