import pytest

from alfred_authenticator.store import SecretStore


@pytest.fixture
def store(tmp_path):
    s = SecretStore.open(tmp_path / "store" / "config.db")
    yield s
    s.close()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    # never read the developer's real config or store
    monkeypatch.setenv("ALFRED_AUTHENTICATOR_CONFIG", str(tmp_path / "cfg.json"))
    monkeypatch.delenv("ALFRED_AUTHENTICATOR_DB", raising=False)
