"""
Runtime configuration.

Settings live in config/config.yaml; every key is optional and falls back to
the defaults below.  API keys are never stored in YAML -- they are read from
the environment (a local .env file is loaded by python-dotenv).
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, model_validator

from docvault.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/config.yaml"


class ChunkingSettings(BaseModel):
    chunk_size: int = 1000
    chunk_overlap: int = 200

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingSettings":
        if self.chunk_size <= 0 or self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap must satisfy 0 <= overlap < chunk_size "
                f"(got size={self.chunk_size}, overlap={self.chunk_overlap})"
            )
        return self


class EmbeddingSettings(BaseModel):
    model: str = "text-embedding-3-small"
    dimensions: int = 768
    batch_size: int = 96
    max_workers: int = 4


class IndexSettings(BaseModel):
    index_dir: str = "data/index"
    persist: bool = True


class RetrievalSettings(BaseModel):
    similarity_threshold: float = 0.5   # below this the keyword fallback kicks in
    fallback_top_k: int = 15            # candidates fetched from the index
    final_top_k: int = 5                # excerpts handed to generation
    condense_max_turns: int = 4


class GenerationSettings(BaseModel):
    provider: str = "openai"            # "openai" | "anthropic"
    model: str = "gpt-4o-mini"
    condense_model: Optional[str] = None
    max_tokens: int = 1024
    temperature: float = 0.1


class IngestionSettings(BaseModel):
    max_file_bytes: int = 20 * 1024 * 1024
    metadata_text_chars: int = 1000
    vision_enabled: bool = False
    vision_model: str = "claude-haiku-4-5-20251001"
    vision_max_bytes: int = 4 * 1024 * 1024


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: str = "logs/docvault.log"


class Settings(BaseModel):
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    index: IndexSettings = Field(default_factory=IndexSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(path: str | Path = DEFAULT_CONFIG_PATH) -> Settings:
    """Load .env, then parse the YAML config into Settings (defaults if absent)."""
    load_dotenv()
    p = Path(path)
    if not p.exists():
        logger.debug(f"[Config] {p} not found, using defaults")
        return Settings()

    with open(p, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    try:
        settings = Settings(**raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration in {p}: {exc}") from exc

    logger.debug(f"[Config] Loaded settings from {p}")
    return settings
