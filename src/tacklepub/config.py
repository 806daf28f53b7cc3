"""Unified configuration loaded from .tacklepub.toml and env vars.

Loading order: defaults → TOML file → env vars → CLI flags.

Nothing in the package reads paths from module globals: every store
receives a ``StoreConfig`` in its constructor.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".tacklepub.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
    Path.home() / ".config" / "tacklepub",
]

# Directory under ``documents/`` for each page type.
PAGE_TYPE_DIRS: dict[str, str] = {
    "blog": "blog",
    "species": "species",
    "how-to": "how-to",
    "location": "locations",
}


class StoreConfig(BaseModel):
    """[store] section — where the document store lives and lock tuning."""

    root_dir: Path = Path("./content")
    lock_timeout: float = 30.0
    lock_poll_interval: float = 0.1
    stale_threshold: float = 5 * 60.0

    @property
    def documents_dir(self) -> Path:
        return self.root_dir / "documents"

    @property
    def system_dir(self) -> Path:
        return self.root_dir / "system"

    @property
    def index_path(self) -> Path:
        return self.system_dir / "contentIndex.json"

    @property
    def index_backup_path(self) -> Path:
        return self.system_dir / "contentIndex.json.backup"

    @property
    def ledger_path(self) -> Path:
        return self.system_dir / "topicLedger.json"

    @property
    def job_queue_path(self) -> Path:
        return self.system_dir / "jobQueue.json"

    @property
    def lock_path(self) -> Path:
        return self.system_dir / ".indexLock"

    @property
    def publish_metrics_path(self) -> Path:
        return self.system_dir / "publishMetrics.json"

    @property
    def lock_metrics_path(self) -> Path:
        return self.system_dir / "lockMetrics.json"

    def type_dir(self, page_type: str) -> Path:
        """Directory holding every document of ``page_type``."""
        try:
            return self.documents_dir / PAGE_TYPE_DIRS[page_type]
        except KeyError:
            raise ValueError(f"Unknown page type: {page_type}") from None

    def document_path(
        self,
        page_type: str,
        slug: str,
        state_slug: str | None = None,
        city_slug: str | None = None,
    ) -> Path:
        """Canonical file for a document; locations nest by state."""
        type_dir = self.type_dir(page_type)
        if page_type == "location" and state_slug and city_slug:
            return type_dir / state_slug / f"{city_slug}.json"
        return type_dir / f"{slug}.json"


class PipelineConfig(BaseModel):
    """[pipeline] section — publishing cadence and circuit breaker."""

    daily_publish_cap: int = 20
    failure_stop_threshold: int = 3
    duplicate_similarity_threshold: float = 0.85


class QualityConfig(BaseModel):
    """[quality] section — quality gate thresholds."""

    min_word_counts: dict[str, int] = Field(
        default_factory=lambda: {
            "blog": 900,
            "species": 1200,
            "how-to": 1200,
            "location": 1000,
        }
    )
    min_lexical_diversity: float = 0.25
    min_instructional_paragraphs: int = 3
    min_sentence_stddev_ratio: float = 0.15
    safe_context_window: int = 200

    def min_words_for(self, page_type: str) -> int:
        return self.min_word_counts.get(page_type, 1000)


class RevalidationConfig(BaseModel):
    """[revalidation] section — cache revalidation endpoint."""

    url: str = ""
    secret: str = ""
    enabled: bool = True
    max_retries: int = 2
    retry_delay: float = 1.0
    timeout: float = 5.0

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.url and self.secret)


class TacklepubConfig(BaseModel):
    """Top-level configuration model for the publish subsystem."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    revalidation: RevalidationConfig = Field(default_factory=RevalidationConfig)


def load_config(path: str | Path | None = None) -> TacklepubConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .tacklepub.toml in CWD
    3. ~/.config/tacklepub/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged TacklepubConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        global_config = Path.home() / ".config" / "tacklepub" / "config.toml"
        if not data and global_config.exists():
            data = _load_toml(global_config)
            logger.info("Loaded config from %s", global_config)

    config = TacklepubConfig.model_validate(data) if data else TacklepubConfig()
    return _apply_env_vars(config)


def merge_cli_overrides(config: TacklepubConfig, **cli_kwargs: object) -> TacklepubConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "root": ("store", "root_dir"),
        "lock_timeout": ("store", "lock_timeout"),
        "daily_cap": ("pipeline", "daily_publish_cap"),
        "failure_threshold": ("pipeline", "failure_stop_threshold"),
    }

    for key, value in cli_kwargs.items():
        if value is None or key not in mapping:
            continue
        section, field = mapping[key]
        data[section][field] = value

    return TacklepubConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: TacklepubConfig) -> TacklepubConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "TACKLEPUB_ROOT": ("store", "root_dir"),
        "TACKLEPUB_LOCK_TIMEOUT": ("store", "lock_timeout"),
        "TACKLEPUB_DAILY_CAP": ("pipeline", "daily_publish_cap"),
        "REVALIDATION_URL": ("revalidation", "url"),
        "REVALIDATE_SECRET": ("revalidation", "secret"),
        "REVALIDATION_SECRET": ("revalidation", "secret"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value:
            data[section][field] = value

    return TacklepubConfig.model_validate(data)
