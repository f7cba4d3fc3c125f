"""
Navigator configuration.

Settings live in config/config.yaml (one section per concern) and are
validated into Pydantic models. Secrets such as OPENAI_API_KEY are read
from the environment (.env via python-dotenv), never from the YAML file.
"""
from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, model_validator

from statute_navigator.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("config/config.yaml")


class StorageConfig(BaseModel):
    statutes_dir: str = "statutes"
    index_dir: str = "data/index"
    statute_table: str = "nc_statutes"
    session_table_prefix: str = "session_context"
    dead_letter_path: str = "data/dead_letter.json"


class ChunkingConfig(BaseModel):
    chunk_size: int = 1200
    chunk_overlap: int = 200

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if not 0 < self.chunk_overlap < self.chunk_size:
            raise ValueError("chunking requires 0 < chunk_overlap < chunk_size")
        return self


class EmbeddingConfig(BaseModel):
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    request_timeout: float = 30.0


class IngestionConfig(BaseModel):
    batch_size: int = Field(default=100, gt=0)
    max_retries: int = Field(default=5, gt=0)
    retry_backoff_s: float = Field(default=2.0, ge=0)


class RetrievalConfig(BaseModel):
    top_k: int = Field(default=15, gt=0)
    session_top_k: int = Field(default=3, ge=0)


class GenerationConfig(BaseModel):
    model: str = "gpt-4o-mini"
    vision_model: str = "gpt-4o-mini"
    temperature: float = 0.1


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/navigator.log"


class AppConfig(BaseModel):
    storage: StorageConfig = Field(default_factory=StorageConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    # chapter label -> keywords, in priority order; None keeps the built-in map
    chapters: Optional[dict[str, list[str]]] = None

    def chapter_map(self) -> Optional["OrderedDict[str, list[str]]"]:
        if self.chapters is None:
            return None
        return OrderedDict(self.chapters)


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Load and validate the YAML config; a missing file yields the defaults."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"[Config] {path} not found, using defaults")
        return AppConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig.model_validate(raw)
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigurationError(f"Invalid config {path}: {exc}") from exc
