"""Tests for AppConfig loading (YAML, env vars, explicit overrides)."""

import pytest

from typed_docstore.config import load_config


class TestDefaults:
    def test_default_config(self):
        config = load_config()
        assert config.store.backend == "qdrant"
        assert config.store.location == ":memory:"
        assert config.store.url is None
        assert config.store.path is None
        assert config.store.collection == "documents"
        assert config.store.page_size == 100
        assert config.store.timeout is None
        assert config.store.native_async is False
        assert config.mapping.cache_descriptors is False
        assert config.logging.level == "INFO"


class TestYamlLoading:
    def test_load_from_yaml(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text(
            "store:\n"
            '  url: "http://localhost:6333"\n'
            "  collection: people\n"
            "  page_size: 50\n"
            "  native_async: true\n"
            "mapping:\n"
            "  cache_descriptors: yes\n"
            "logging:\n"
            "  level: DEBUG\n",
            encoding="utf-8",
        )

        config = load_config(config_path=str(config_file))
        assert config.store.url == "http://localhost:6333"
        assert config.store.collection == "people"
        assert config.store.page_size == 50
        assert config.store.native_async is True
        assert config.mapping.cache_descriptors is True
        assert config.logging.level == "DEBUG"

    def test_missing_yaml_uses_defaults(self):
        config = load_config(config_path="/nonexistent/config.yml")
        assert config.store.collection == "documents"

    def test_partial_yaml_preserves_defaults(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("store:\n  page_size: 10\n", encoding="utf-8")

        config = load_config(config_path=str(config_file))
        assert config.store.page_size == 10
        assert config.store.location == ":memory:"  # default preserved

    def test_unknown_section_and_field_ignored(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text(
            "unknown_section:\n  foo: bar\nstore:\n  page_size: 30\n  colour: red\n",
            encoding="utf-8",
        )

        config = load_config(config_path=str(config_file))
        assert config.store.page_size == 30
        assert not hasattr(config.store, "colour")

    def test_non_mapping_yaml(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")

        config = load_config(config_path=str(config_file))
        assert config.store.page_size == 100


class TestEnvVars:
    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.yml"
        config_file.write_text("store:\n  page_size: 30\n", encoding="utf-8")

        monkeypatch.setenv("TYPED_DOCSTORE_PAGE_SIZE", "500")
        config = load_config(config_path=str(config_file))
        assert config.store.page_size == 500

    def test_env_url(self, monkeypatch):
        monkeypatch.setenv("TYPED_DOCSTORE_URL", "http://qdrant:6333")
        monkeypatch.setenv("TYPED_DOCSTORE_API_KEY", "secret")
        config = load_config()
        assert config.store.url == "http://qdrant:6333"
        assert config.store.api_key == "secret"

    def test_env_backend(self, monkeypatch):
        monkeypatch.setenv("TYPED_DOCSTORE_BACKEND", "memory")
        assert load_config().store.backend == "memory"

    def test_env_empty_optional_is_none(self, monkeypatch):
        monkeypatch.setenv("TYPED_DOCSTORE_LOCATION", "")
        config = load_config()
        assert config.store.location is None

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("off", False)])
    def test_env_booleans(self, monkeypatch, raw, expected):
        monkeypatch.setenv("TYPED_DOCSTORE_NATIVE_ASYNC", raw)
        config = load_config()
        assert config.store.native_async is expected

    def test_env_timeout(self, monkeypatch):
        monkeypatch.setenv("TYPED_DOCSTORE_TIMEOUT", "15")
        config = load_config()
        assert config.store.timeout == 15

    def test_env_invalid_optional_int_ignored(self, monkeypatch):
        monkeypatch.setenv("TYPED_DOCSTORE_TIMEOUT", "soon")
        config = load_config()
        assert config.store.timeout is None

    def test_env_invalid_required_int_raises(self, monkeypatch):
        monkeypatch.setenv("TYPED_DOCSTORE_PAGE_SIZE", "many")
        with pytest.raises(ValueError):
            load_config()


class TestOverrides:
    def test_overrides_env(self, monkeypatch):
        monkeypatch.setenv("TYPED_DOCSTORE_COLLECTION", "from-env")
        config = load_config(overrides={"store.collection": "explicit"})
        assert config.store.collection == "explicit"

    def test_none_values_are_skipped(self):
        config = load_config(overrides={"store.page_size": None})
        assert config.store.page_size == 100  # default

    def test_malformed_keys_ignored(self):
        config = load_config(overrides={"page_size": 5, "nowhere.page_size": 5})
        assert config.store.page_size == 100

    def test_value_coerced(self):
        config = load_config(overrides={"store.page_size": "25", "mapping.cache_descriptors": "yes"})
        assert config.store.page_size == 25
        assert config.mapping.cache_descriptors is True


class TestPriority:
    def test_full_priority_chain(self, tmp_path, monkeypatch):
        """YAML < env < overrides."""
        config_file = tmp_path / "config.yml"
        config_file.write_text("store:\n  page_size: 10\n", encoding="utf-8")

        monkeypatch.setenv("TYPED_DOCSTORE_PAGE_SIZE", "20")

        config = load_config(
            config_path=str(config_file),
            overrides={"store.page_size": 30},
        )
        assert config.store.page_size == 30
