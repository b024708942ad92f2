import pytest

from complyflow.config import ComplyFlowConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("COMPLYFLOW_CONFIG", "COMPLYFLOW_DATABASE_URL", "DATABASE_URL", "COMPLYFLOW_TRANSPORT"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_config()
    assert config == ComplyFlowConfig()
    assert config.alerts.critical_days == 7
    assert config.alerts.high_days == 30
    assert config.retry.max_attempts == 3
    assert config.transport.backend == "none"


def test_yaml_file_from_env(tmp_path, monkeypatch):
    path = tmp_path / "complyflow.yaml"
    path.write_text(
        """
alerts:
  critical_days: 3
  high_days: 14
retry:
  max_attempts: 5
transport:
  backend: redis
  topic: compliance
  redis:
    host: cache
database_url: sqlite:///tmp/complyflow.db
"""
    )
    monkeypatch.setenv("COMPLYFLOW_CONFIG", str(path))

    config = load_config()
    assert config.alerts.critical_days == 3
    assert config.alerts.high_days == 14
    assert config.retry.max_attempts == 5
    assert config.transport.backend == "redis"
    assert config.transport.topic == "compliance"
    assert config.transport.redis.host == "cache"
    assert config.database_url == "sqlite:///tmp/complyflow.db"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/complyflow")
    monkeypatch.setenv("COMPLYFLOW_TRANSPORT", "INMEMORY")

    config = load_config()
    assert config.database_url == "postgresql://db/complyflow"
    assert config.transport.backend == "inmemory"
