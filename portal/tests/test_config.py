"""Tests for configuration loading and saving."""

import json
import os
import pytest
from unittest.mock import patch


class TestDefaults:
    def test_defaults(self):
        from portal.common.config import PortalConfig
        cfg = PortalConfig()
        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_model == "gpt-4.1-nano"
        assert cfg.embedding.batch_size == 20
        assert cfg.embedding.stagger_seconds == 0.05
        assert cfg.embedding.batch_delay_seconds == 0.5
        assert cfg.retriever.similarity_threshold == 0.6
        assert cfg.retriever.topk == 20
        assert cfg.retriever.query_cache_ttl_hours == 24.0
        assert cfg.sync.interval_minutes == 15.0
        assert not cfg.notion.is_configured


class TestLoadConfig:
    def test_load_from_file(self, tmp_path):
        from portal.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "notion": {"api_key": "secret_abc", "database_id": "db123"},
            "retriever": {"topk": 5, "similarity_threshold": 0.4},
            "llm": {"provider": "anthropic"},
        }))

        with patch("portal.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True):
            cfg = load_config()

        assert cfg.notion.is_configured
        assert cfg.retriever.topk == 5
        assert cfg.retriever.similarity_threshold == 0.4
        assert cfg.llm.provider == "anthropic"
        assert cfg.embedding.batch_size == 20

    def test_invalid_file_falls_back_to_defaults(self, tmp_path, caplog):
        import logging
        from portal.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with patch("portal.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True), \
             caplog.at_level(logging.WARNING, logger="portal.common.config"):
            cfg = load_config()

        assert cfg.retriever.topk == 20
        assert "Failed to load config file" in caplog.text

    def test_env_overrides_file(self, tmp_path):
        from portal.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"retriever": {"topk": 5}}))

        env = {
            "PORTAL_TOPK": "7",
            "PORTAL_SIMILARITY_THRESHOLD": "0.75",
            "OPENAI_API_KEY": "sk-env",
            "NOTION_API_KEY": "secret_env",
            "NOTION_DATABASE_ID": "db-env",
        }
        with patch("portal.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=True):
            cfg = load_config()

        assert cfg.retriever.topk == 7
        assert cfg.retriever.similarity_threshold == 0.75
        assert cfg.llm.openai_api_key == "sk-env"
        assert "openai_api_key" in cfg._env_sourced_keys
        assert "notion_api_key" in cfg._env_sourced_keys


class TestSaveConfig:
    def test_env_sourced_keys_not_persisted(self, tmp_path):
        from portal.common.config import load_config, save_config
        config_file = tmp_path / "config.json"

        with patch("portal.common.config.CONFIG_DIR", tmp_path), \
             patch("portal.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {"OPENAI_API_KEY": "sk-env", "NOTION_API_KEY": "secret_env"}, clear=True):
            cfg = load_config()
            cfg.llm.anthropic_api_key = "sk-ant-file"
            save_config(cfg)

        data = json.loads(config_file.read_text())
        assert data["llm"]["openai_api_key"] == ""
        assert data["llm"]["anthropic_api_key"] == "sk-ant-file"
        assert data["notion"]["api_key"] == ""
        assert oct(config_file.stat().st_mode)[-3:] == "600"
