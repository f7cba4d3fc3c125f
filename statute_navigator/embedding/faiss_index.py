"""
FAISS Vector Store
-------------------
Named vector tables over faiss.IndexFlatL2 (exact nearest-neighbour search
by squared L2 distance, closest first).

Each VectorTable keeps:
  - a FAISS IndexFlatL2 for vector search
  - a parallel list of Chunk rows (same ordering as FAISS row ids)

A VectorStore is the long-lived handle over a directory of tables:
  - nc_statutes        persistent, written once per ingestion (overwrite)
  - session_context*   ephemeral, in memory only, dropped on session clear

Persistence per table:
  - FAISS index    -> <root>/<table>/faiss.index
  - Record rows    -> <root>/<table>/records.json
  - Manifest       -> <root>/<table>/table_manifest.json
"""
from __future__ import annotations

import shutil
import threading
from pathlib import Path
from typing import Iterable, Literal, Optional

import faiss
import numpy as np
from loguru import logger

from statute_navigator.errors import ConfigurationError, DimensionMismatchError
from statute_navigator.schemas import Chunk, EmbeddedRecord, SearchHit
from statute_navigator.utils.helpers import load_json, save_json

INDEX_DIR = Path("data/index")
FAISS_FILE = "faiss.index"
RECORDS_FILE = "records.json"
MANIFEST_FILE = "table_manifest.json"


class VectorTable:
    """
    One named table of embedded chunks.

    Vectors live only in the FAISS index; rows keep the chunk text and
    source. The declared dimension is fixed at creation and every added
    record must match it.
    """

    def __init__(self, name: str, dimensions: int) -> None:
        if dimensions <= 0:
            raise ValueError(f"Table '{name}' needs a positive dimension, got {dimensions}")
        self.name = name
        self.dimensions = dimensions
        self.faiss_index: faiss.IndexFlatL2 = faiss.IndexFlatL2(dimensions)
        self.rows: list[Chunk] = []
        # Guards faiss_index and rows as one unit
        self._lock = threading.RLock()

    @classmethod
    def from_records(cls, name: str, records: list[EmbeddedRecord]) -> "VectorTable":
        if not records:
            raise ValueError(f"Cannot infer dimension for table '{name}' from zero records")
        table = cls(name, records[0].dimension)
        table.add(records)
        return table

    # --- Write ----------------------------------------------------------------

    def add(self, records: Iterable[EmbeddedRecord]) -> int:
        """Append records. Returns the number added."""
        records = list(records)
        if not records:
            return 0
        for record in records:
            if record.dimension != self.dimensions:
                raise DimensionMismatchError(self.name, self.dimensions, record.dimension)

        matrix = np.ascontiguousarray([r.vector for r in records], dtype=np.float32)
        rows = [Chunk(text=r.text, source=r.source, chunk_index=r.chunk_index) for r in records]
        with self._lock:
            self.faiss_index.add(matrix)
            self.rows.extend(rows)
        return len(records)

    # --- Search ---------------------------------------------------------------

    def search(self, vector: list[float], limit: int = 10) -> list[SearchHit]:
        """
        k-nearest-neighbour search.

        Returns: List of SearchHit sorted by distance ascending.
        """
        if len(vector) != self.dimensions:
            raise DimensionMismatchError(self.name, self.dimensions, len(vector))
        qv = np.ascontiguousarray(np.asarray(vector, dtype=np.float32).reshape(1, -1))
        with self._lock:
            if limit <= 0 or self.count == 0:
                return []
            distances, indices = self.faiss_index.search(qv, min(limit, self.count))
            return [
                SearchHit(chunk=self.rows[idx], distance=float(dist))
                for dist, idx in zip(distances[0], indices[0])
                if idx >= 0
            ]

    @property
    def count(self) -> int:
        return self.faiss_index.ntotal

    # --- Persistence ----------------------------------------------------------

    def save(self, table_dir: Path) -> None:
        """Persist FAISS index + record rows + manifest to table_dir."""
        table_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            faiss.write_index(self.faiss_index, str(table_dir / FAISS_FILE))
            rows = [r.model_dump(mode="json") for r in self.rows]

        save_json(rows, table_dir / RECORDS_FILE)
        save_json(
            {
                "name": self.name,
                "dimensions": self.dimensions,
                "total_vectors": len(rows),
                "sources": sorted({r["source"] for r in rows}),
            },
            table_dir / MANIFEST_FILE,
        )
        logger.info(f"[VectorStore] Table '{self.name}' saved -> {table_dir} ({len(rows)} rows)")

    @classmethod
    def load(cls, table_dir: Path) -> "VectorTable":
        """Load a persisted table."""
        manifest = load_json(table_dir / MANIFEST_FILE)
        table = cls(manifest["name"], int(manifest["dimensions"]))
        table.faiss_index = faiss.read_index(str(table_dir / FAISS_FILE))

        rows = load_json(table_dir / RECORDS_FILE)
        if len(rows) != table.faiss_index.ntotal:
            raise ConfigurationError(
                f"Table '{table.name}' is corrupt: {len(rows)} rows vs "
                f"{table.faiss_index.ntotal} vectors"
            )
        table.rows = [Chunk(**row) for row in rows]
        logger.info(f"[VectorStore] Loaded table '{table.name}': {table.count} vectors")
        return table


class VectorStore:
    """
    Long-lived handle over a set of named tables.

    Usage:
        store = VectorStore.connect("data/index")
        store.create_table("nc_statutes", records, mode="overwrite")
        hits = store.open_table("nc_statutes").search(vector, limit=15)
    """

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = Path(root) if root is not None else None
        self._tables: dict[str, VectorTable] = {}
        self._persistent: set[str] = set()
        self._lock = threading.RLock()

    @classmethod
    def connect(cls, root: str | Path | None = INDEX_DIR) -> "VectorStore":
        store = cls(Path(root) if root is not None else None)
        logger.info(f"[VectorStore] Connected | root={store.root or '<memory>'}")
        return store

    # --- Introspection --------------------------------------------------------

    def _table_dir(self, name: str) -> Optional[Path]:
        return self.root / name if self.root is not None else None

    def _on_disk(self, name: str) -> bool:
        table_dir = self._table_dir(name)
        return table_dir is not None and (table_dir / MANIFEST_FILE).exists()

    def has_table(self, name: str) -> bool:
        with self._lock:
            return name in self._tables or self._on_disk(name)

    def table_names(self) -> list[str]:
        with self._lock:
            names = set(self._tables)
            if self.root is not None and self.root.exists():
                names.update(p.parent.name for p in self.root.glob(f"*/{MANIFEST_FILE}"))
            return sorted(names)

    # --- Tables ---------------------------------------------------------------

    def open_table(self, name: str) -> VectorTable:
        """Return a table, loading it from disk on first access."""
        with self._lock:
            if name in self._tables:
                return self._tables[name]
            if not self._on_disk(name):
                raise ConfigurationError(f"Table '{name}' does not exist in {self.root or '<memory>'}")
            table = VectorTable.load(self._table_dir(name))
            self._tables[name] = table
            self._persistent.add(name)
            return table

    def create_table(
        self,
        name: str,
        records: list[EmbeddedRecord],
        mode: Literal["create", "overwrite"] = "create",
        persist: bool = True,
    ) -> VectorTable:
        """
        Create a table from records.

        mode="overwrite" replaces any prior content wholesale; mode="create"
        fails if the table already exists. persist=False keeps the table in
        memory only.
        """
        with self._lock:
            if mode == "create" and self.has_table(name):
                raise ConfigurationError(f"Table '{name}' already exists")

            table = VectorTable.from_records(name, records)
            if persist and self.root is not None:
                table_dir = self._table_dir(name)
                if table_dir.exists():
                    shutil.rmtree(table_dir)
                table.save(table_dir)
                self._persistent.add(name)
            else:
                self._persistent.discard(name)

            self._tables[name] = table
            logger.info(f"[VectorStore] Table '{name}' created ({mode}) | {table.count} rows")
            return table

    def add(self, name: str, records: list[EmbeddedRecord], persist: bool = False) -> VectorTable:
        """Append records to a table, creating it on first use."""
        with self._lock:
            if not self.has_table(name):
                return self.create_table(name, records, mode="create", persist=persist)
            table = self.open_table(name)
            table.add(records)
            if name in self._persistent and self.root is not None:
                table.save(self._table_dir(name))
            return table

    def drop_table(self, name: str) -> bool:
        """Delete a table if present. Returns False when there was nothing to drop."""
        with self._lock:
            existed = self._tables.pop(name, None) is not None
            self._persistent.discard(name)
            table_dir = self._table_dir(name)
            if table_dir is not None and table_dir.exists():
                shutil.rmtree(table_dir)
                existed = True
            if existed:
                logger.info(f"[VectorStore] Table '{name}' dropped")
            return existed

    def refresh(self) -> None:
        """Drop cached persistent tables so the next open reloads them from disk."""
        with self._lock:
            for name in list(self._persistent):
                self._tables.pop(name, None)
            self._persistent.clear()
        logger.info("[VectorStore] Persistent table handles refreshed")

    def close(self) -> None:
        """Release every cached table, ephemeral ones included."""
        with self._lock:
            self._tables.clear()
            self._persistent.clear()
        logger.info("[VectorStore] Closed")
