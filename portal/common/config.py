"""
Configuration Management for the Resource Portal

Loads configuration from ~/.resource-portal/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("portal.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".resource-portal"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"

# Project paths (relative to this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent


@dataclass
class NotionConfig:
    """Notion content source configuration"""
    api_key: str = ""
    database_id: str = ""
    api_version: str = "2022-06-28"
    timeout: float = 30.0
    fixture_path: str = ""  # JSON file used when Notion is not configured

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.database_id)


@dataclass
class EmbeddingConfig:
    """Embedding model and batching configuration"""
    mode: str = "openai"  # "openai" or "femb" (fastembed, on-device)
    model: str = "text-embedding-3-small"
    batch_size: int = 20
    stagger_seconds: float = 0.05
    batch_delay_seconds: float = 0.5
    retry_attempts: int = 3


@dataclass
class LLMConfig:
    """Shared LLM provider configuration"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4.1-nano"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    temperature: float = 0.7
    max_tokens: int = 800


@dataclass
class RetrieverConfig:
    """Retrieval and answer configuration"""
    topk: int = 20
    similarity_threshold: float = 0.6
    query_cache_ttl_hours: float = 24.0


@dataclass
class SyncConfig:
    """Reconciliation configuration"""
    interval_minutes: float = 15.0


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 5000


@dataclass
class PortalConfig:
    """Main portal configuration"""
    notion: NotionConfig = field(default_factory=NotionConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_notion_config(data: dict) -> NotionConfig:
    """Parse notion section from config dict"""
    notion_data = data.get("notion", {})
    return NotionConfig(
        api_key=notion_data.get("api_key", ""),
        database_id=notion_data.get("database_id", ""),
        api_version=notion_data.get("api_version", "2022-06-28"),
        timeout=notion_data.get("timeout", 30.0),
        fixture_path=notion_data.get("fixture_path", ""),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "openai"),
        model=embedding_data.get("model", "text-embedding-3-small"),
        batch_size=embedding_data.get("batch_size", 20),
        stagger_seconds=embedding_data.get("stagger_seconds", 0.05),
        batch_delay_seconds=embedding_data.get("batch_delay_seconds", 0.5),
        retry_attempts=embedding_data.get("retry_attempts", 3),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "openai"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4.1-nano"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash"),
        temperature=llm_data.get("temperature", 0.7),
        max_tokens=llm_data.get("max_tokens", 800),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        topk=retriever_data.get("topk", 20),
        similarity_threshold=retriever_data.get("similarity_threshold", 0.6),
        query_cache_ttl_hours=retriever_data.get("query_cache_ttl_hours", 24.0),
    )


def _parse_sync_config(data: dict) -> SyncConfig:
    sync_data = data.get("sync", {})
    return SyncConfig(
        interval_minutes=sync_data.get("interval_minutes", 15.0),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=server_data.get("port", 5000),
    )


def load_config() -> PortalConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.resource-portal/config.json)
    3. Default values
    """
    config = PortalConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.notion = _parse_notion_config(data)
            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.retriever = _parse_retriever_config(data)
            config.sync = _parse_sync_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("NOTION_API_KEY"):
        config.notion.api_key = os.getenv("NOTION_API_KEY")
        config._env_sourced_keys.add("notion_api_key")
    if os.getenv("NOTION_DATABASE_ID"):
        config.notion.database_id = os.getenv("NOTION_DATABASE_ID")
    if os.getenv("PORTAL_FIXTURE_PATH"):
        config.notion.fixture_path = os.getenv("PORTAL_FIXTURE_PATH")

    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("PORTAL_SIMILARITY_THRESHOLD"):
        config.retriever.similarity_threshold = float(os.getenv("PORTAL_SIMILARITY_THRESHOLD"))
    if os.getenv("PORTAL_TOPK"):
        config.retriever.topk = int(os.getenv("PORTAL_TOPK"))
    if os.getenv("PORTAL_PORT"):
        config.server.port = int(os.getenv("PORTAL_PORT"))

    # LLM env var overrides (track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "PORTAL_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: PortalConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "temperature": config.llm.temperature,
        "max_tokens": config.llm.max_tokens,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "notion": {
            "api_key": "" if "notion_api_key" in env_sourced else config.notion.api_key,
            "database_id": config.notion.database_id,
            "api_version": config.notion.api_version,
            "timeout": config.notion.timeout,
            "fixture_path": config.notion.fixture_path,
        },
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
            "batch_size": config.embedding.batch_size,
            "stagger_seconds": config.embedding.stagger_seconds,
            "batch_delay_seconds": config.embedding.batch_delay_seconds,
            "retry_attempts": config.embedding.retry_attempts,
        },
        "llm": llm_section,
        "retriever": {
            "topk": config.retriever.topk,
            "similarity_threshold": config.retriever.similarity_threshold,
            "query_cache_ttl_hours": config.retriever.query_cache_ttl_hours,
        },
        "sync": {
            "interval_minutes": config.sync.interval_minutes,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
