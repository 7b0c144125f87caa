import pytest

import hermetic

pytest_plugins = "test_fixtures"


@pytest.fixture(autouse=True)
def quiet_commands(monkeypatch):
    """Tests should not depend on whether the developer asked to see commands."""
    monkeypatch.delenv(hermetic.SHOW_CMDS_ENV_VAR, raising=False)
