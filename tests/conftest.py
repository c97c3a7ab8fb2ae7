"""Root test configuration for webstarter.

Every test starts from a clean environment: the variables load_config() reads
are removed, COOKIEKEY is set to a test key so servers are startable by
default, and the working directory is a fresh temp dir so no stray
webstarter.yaml or routes/ directory is picked up.

Tests that exercise a missing signing key delete COOKIEKEY themselves.
"""

import pytest

_CONFIG_ENV_VARS = (
    "PORT",
    "HOST",
    "COOKIEKEY",
    "LOG_LEVEL",
    "JSON_LOGS",
    "WEBSTARTER_CONFIG",
)

TEST_COOKIE_KEY = "test-signing-key"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("COOKIEKEY", TEST_COOKIE_KEY)
    monkeypatch.chdir(tmp_path)
