from typing import List, Tuple

import pytest

from partstore.core.clock import FrozenClock
from partstore.core.config import Settings
from partstore.db.backend import SQLiteBackend
from partstore.services import build_services
from partstore.services.notifier import Notifier

IN_MEMORY_URL = "sqlite+aiosqlite://"


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: List[Tuple[str, str, str]] = []
        self.fail = False

    async def send(self, recipient: str, subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("mail server unreachable")
        self.sent.append((recipient, subject, body))


def make_settings(**overrides) -> Settings:
    config = Settings()
    config.database_url = IN_MEMORY_URL
    config.database_echo = False
    config.default_min_qty = 0
    config.alert_throttle_minutes = 30
    config.auto_assign_fixed_location = True
    config.alert_email = "lager@example.com"
    config.smtp_user = ""
    config.smtp_pass = ""
    config.smtp_from = ""
    config.log_level = "WARNING"
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def backend():
    backend = SQLiteBackend(IN_MEMORY_URL)
    await backend.create_schema()
    yield backend
    await backend.dispose()


@pytest.fixture
def services(backend, notifier, clock, settings):
    return build_services(settings, backend=backend, notifier=notifier, clock=clock)


@pytest.fixture
def directory(services):
    return services.directory


@pytest.fixture
def ledger(services):
    return services.ledger
