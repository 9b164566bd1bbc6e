import json

from chunkwise import config as cfg
from chunkwise.chunking.types import ChunkConfig


def test_missing_file_gives_defaults(tmp_path):
    loaded = cfg.load_config(tmp_path / "missing.json")
    assert loaded == cfg.DEFAULT_CONFIG
    assert loaded is not cfg.DEFAULT_CONFIG


def test_corrupt_file_gives_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert cfg.load_config(path) == cfg.DEFAULT_CONFIG


def test_file_values_merge_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"translator": {"provider": "proxy", "api_url": "https://t.test"}}), encoding="utf-8")
    loaded = cfg.load_config(path)
    assert loaded["translator"]["provider"] == "proxy"
    assert loaded["translator"]["api_url"] == "https://t.test"
    assert loaded["translator"]["max_retries"] == 3
    assert loaded["chunking"] == cfg.DEFAULT_CONFIG["chunking"]


def test_save_and_reload(tmp_path):
    path = tmp_path / "nested" / "config.json"
    data = cfg.load_config(path)
    data["chunking"]["target_chunk_tokens"] = 4000
    cfg.save_config(data, path)
    assert cfg.load_config(path)["chunking"]["target_chunk_tokens"] == 4000


def test_env_var_selects_config_file(tmp_path, monkeypatch):
    path = tmp_path / "env.json"
    path.write_text(json.dumps({"chunking": {"max_chunk_tokens": 9000}}), encoding="utf-8")
    monkeypatch.setenv(cfg.CONFIG_ENV_VAR, str(path))
    assert cfg.get_config_path() == path
    assert cfg.get_chunk_config().max_chunk_tokens == 9000


def test_create_default_config(tmp_path):
    path = cfg.create_default_config(tmp_path / "config.json")
    assert json.loads(path.read_text(encoding="utf-8")) == cfg.DEFAULT_CONFIG


def test_get_chunk_config_defaults():
    assert cfg.get_chunk_config({"chunking": {}}) == ChunkConfig()
