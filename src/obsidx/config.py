"""Configuration management for obsidx.

Loads from environment variables, .env files, and config/default.toml.
Secrets (the OpenAI key) come from env vars; structural config from TOML.

Default index layout under ``./.obsidx``:
  text.sqlite                  — lexical index (FTS5)
  vectors/                     — ChromaDB chunk store
  vectors/note_mtimes.sqlite   — path → mtime side table
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INDEX_DIR = Path(".obsidx")


class IndexConfig(BaseSettings):
    """Index location and scanning rules."""

    path: Path = Field(default=DEFAULT_INDEX_DIR, description="Index directory")
    excluded_folders: list[str] = Field(default_factory=lambda: [".obsidian", ".git", ".trash"])

    @field_validator("path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return v.expanduser()


class ChunkConfig(BaseSettings):
    """Fixed-window chunking parameters for the vector store."""

    max_chars: int = Field(default=1500, gt=0)
    overlap: int = Field(default=200, ge=0)

    @model_validator(mode="after")
    def check_overlap(self) -> ChunkConfig:
        if self.overlap >= self.max_chars:
            raise ValueError(
                f"overlap ({self.overlap}) must be smaller than max_chars ({self.max_chars})"
            )
        return self


class EmbeddingConfig(BaseSettings):
    """Embedding backend configuration.

    ``hash`` is the deterministic offline placeholder; ``openai`` calls the
    embeddings API and needs ``OBSIDX_OPENAI_API_KEY``.
    """

    provider: Literal["hash", "openai"] = "hash"
    model: str = "text-embedding-3-small"
    dimensions: int = Field(default=256, gt=0)
    batch_size: int = 64


class SearchConfig(BaseSettings):
    """Query defaults."""

    default_limit: int = 20
    rrf_k: int = 60


class WatchConfig(BaseSettings):
    """Watch mode configuration."""

    debounce_ms: int = 500


class Settings(BaseSettings):
    """Root configuration — aggregates all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="OBSIDX_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    index: IndexConfig = Field(default_factory=IndexConfig)
    chunking: ChunkConfig = Field(default_factory=ChunkConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)

    # Named collections: name → vault root
    collections: dict[str, Path] = Field(default_factory=dict)

    openai_api_key: str = ""

    @field_validator("collections")
    @classmethod
    def expand_collection_roots(cls, v: dict[str, Path]) -> dict[str, Path]:
        return {name: root.expanduser() for name, root in v.items()}

    @classmethod
    def from_toml(cls, path: Path | None = None) -> Settings:
        """Load settings from TOML file, with env var overrides."""
        config_path = path or Path("config/default.toml")
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls(**data)
        return cls()


def load_settings(config_path: Path | None = None) -> Settings:
    """Load and validate settings. Entry point for all config access."""
    return Settings.from_toml(config_path)
