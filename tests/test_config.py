import pytest

from hfmd.exceptions import ConfigurationError
from hfmd.models.config import DEFAULT_ENDPOINT, DownloadConfig
from hfmd.storage.config_manager import ConfigManager


@pytest.fixture(autouse=True)
def no_env_token(monkeypatch):
    monkeypatch.delenv("HF_TOKEN", raising=False)


def test_missing_file_gives_defaults(tmp_path):
    config = ConfigManager(tmp_path / "config.ini").load_config()
    assert config.endpoint == DEFAULT_ENDPOINT
    assert config.revision == "main"
    assert config.max_workers is None
    assert config.durable_writes is True
    assert config.config_path == str(tmp_path)


def test_env_token_used_when_none_configured(tmp_path, monkeypatch):
    monkeypatch.setenv("HF_TOKEN", "hf_env")
    config = ConfigManager(tmp_path / "config.ini").load_config()
    assert config.token == "hf_env"
    assert config.auth_headers() == {"Authorization": "Bearer hf_env"}


def test_save_then_load_with_cli_overrides(tmp_path):
    manager = ConfigManager(tmp_path / "hfmd" / "config.ini")
    manager.save_new_config(
        {"token": "hf_file", "max_workers": 4, "endpoint": "https://mirror.example/"}
    )

    config = ConfigManager(manager.config_file_path).load_config({"max_workers": 2})

    assert config.token == "hf_file"
    assert config.endpoint == "https://mirror.example"
    assert config.max_workers == 2


def test_missing_keys_are_migrated(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\ntoken = abc\n", encoding="utf-8")

    config = ConfigManager(path).load_config()

    assert config.token == "abc"
    written = path.read_text(encoding="utf-8")
    assert "chunk_size = 65536" in written
    assert "durable_writes = true" in written


@pytest.mark.parametrize(
    "line",
    ["max_workers = 0", "max_workers = lots", "chunk_size = 12", "endpoint = ftp://x"],
)
def test_invalid_values_raise(tmp_path, line):
    path = tmp_path / "config.ini"
    path.write_text(f"[DEFAULT]\n{line}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()


def test_effective_workers():
    assert DownloadConfig().effective_workers(3) is None
    assert DownloadConfig().effective_workers(16) is None
    assert DownloadConfig().effective_workers(17) == 8
    assert DownloadConfig(max_workers=3).effective_workers(2) == 3
