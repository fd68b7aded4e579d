import pytest

from mailmover.config import Settings

_SETTINGS_ENV = (
    "GRAPH_TENANT_ID",
    "GRAPH_CLIENT_SECRET",
    "GRAPH_AUTH_MODE",
    "GRAPH_AUTHORITY",
    "GRAPH_SCOPES",
    "BATCH_SIZE_BYTES",
    "BATCH_WAIT_SECONDS",
    "CHECK_TARGET_EMPTY",
    "CONFIRM_BATCHES",
    "QUOTA_GATE_TIMEOUT_SECONDS",
    "AUDIT_LOG_PATH",
    "AUDIT_DELIMITER",
    "ACTING_USER",
)


@pytest.fixture
def settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    return Settings(GRAPH_CLIENT_ID="client-123", GRAPH_TENANT_ID="tenant-1")


@pytest.fixture
def sleeps():
    recorded: list[float] = []
    return recorded
