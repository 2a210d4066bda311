from __future__ import annotations

import pytest

from cloudplane.config import DEFAULT_BASE_URL, MAX_PAGE_SIZE, BackoffSettings, RuntimeSettings, load_settings, resolve_access_token


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    for name in ("CLOUDPLANE_SECRETS_PATH", "CLOUDPLANE_ACCESS_TOKEN", "CLOUDPLANE_BASE_URL", "CLOUDPLANE_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _write_secrets(tmp_path, content: str):
    secrets_dir = tmp_path / ".secrets"
    secrets_dir.mkdir(exist_ok=True)
    path = secrets_dir / "secret.toml"
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults_without_secrets_file():
    settings = load_settings()

    assert settings == RuntimeSettings()
    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.page_size == MAX_PAGE_SIZE
    assert resolve_access_token() is None


def test_strict_mode_requires_secrets_file():
    with pytest.raises(FileNotFoundError):
        load_settings(strict=True)


def test_secrets_file_populates_settings(tmp_path):
    _write_secrets(
        tmp_path,
        """
[cloudplane]
access_token = "dop_v1_abc"
base_url = "https://api.example.test/"
timeout = 12
page_size = 50
progress_interval = 5

[cloudplane.backoff]
initial = 1
maximum = 8
""",
    )

    settings = load_settings(strict=True)

    assert settings.base_url == "https://api.example.test"
    assert settings.timeout == 12.0
    assert settings.page_size == 50
    assert settings.progress_interval == 5.0
    assert settings.backoff == BackoffSettings(initial=1.0, maximum=8.0, factor=2.0)
    assert resolve_access_token() == "dop_v1_abc"


def test_environment_overrides_secrets_file(tmp_path, monkeypatch):
    _write_secrets(tmp_path, '[cloudplane]\naccess_token = "from-file"\nbase_url = "https://file.example.test"\n')
    monkeypatch.setenv("CLOUDPLANE_ACCESS_TOKEN", "from-env")
    monkeypatch.setenv("CLOUDPLANE_BASE_URL", "https://env.example.test")
    monkeypatch.setenv("CLOUDPLANE_TIMEOUT", "7.5")

    settings = load_settings()

    assert settings.base_url == "https://env.example.test"
    assert settings.timeout == 7.5
    assert resolve_access_token() == "from-env"


def test_explicit_secrets_path(tmp_path, monkeypatch):
    custom = tmp_path / "elsewhere.toml"
    custom.write_text('[cloudplane]\naccess_token = "custom"\n', encoding="utf-8")
    monkeypatch.setenv("CLOUDPLANE_SECRETS_PATH", str(custom))

    assert resolve_access_token() == "custom"


def test_invalid_timeout_is_reported(monkeypatch):
    monkeypatch.setenv("CLOUDPLANE_TIMEOUT", "soon")

    with pytest.raises(ValueError, match="CLOUDPLANE_TIMEOUT"):
        load_settings()


@pytest.mark.parametrize("page_size", [0, MAX_PAGE_SIZE + 1])
def test_page_size_is_bounded(page_size):
    with pytest.raises(ValueError):
        RuntimeSettings(page_size=page_size)


def test_explicit_zero_timeout_is_validated(monkeypatch):
    monkeypatch.setenv("CLOUDPLANE_TIMEOUT", "0")

    with pytest.raises(ValueError, match="timeout must be positive"):
        load_settings()


def test_explicit_zero_backoff_is_validated(tmp_path):
    _write_secrets(tmp_path, "[cloudplane.backoff]\ninitial = 0\n")

    with pytest.raises(ValueError, match="initial delay must be positive"):
        load_settings()
