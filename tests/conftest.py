"""Shared pytest fixtures: in-memory whitelist database and a temp jail config."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.dirname(__file__))

from config import JailSettings  # noqa: E402
from database import WhitelistRepository, create_db_engine, init_db, session_factory  # noqa: E402

JAIL_NAME = "opensips-brute-force"

JAIL_CONFIG = """[DEFAULT]
bantime = 3600

[opensips-brute-force]
enabled = true
filter = opensips-brute-force
logpath = /var/log/opensips.log
maxretry = 5
ignoreip = 127.0.0.1/8
"""


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with the schema created."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine):
    return WhitelistRepository(session_factory(engine))


@pytest.fixture
def jail_config(tmp_path):
    """A jail config file on disk with a single ignoreip line."""
    path = tmp_path / "opensips.conf"
    path.write_text(JAIL_CONFIG, encoding="utf-8")
    return path


@pytest.fixture
def jail(jail_config):
    return JailSettings(name=JAIL_NAME, config_path=str(jail_config), command_timeout=7)
