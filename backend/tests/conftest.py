"""
Shared pytest fixtures for ConfSync tests.

Fixtures provided:
- agent_config: AgentConfig with token/secret set and a temp data dir
- config_file: Existing configuration file with content A
- config_a / config_b: Previous and new configuration bytes
- make_controller: FakeServiceController factory
- fake_controller: FakeServiceController that is active on the first poll
- orchestrator: DeployOrchestrator wired to fake_controller
- no_sleep: Patches asyncio.sleep in the orchestrator so polls are instant
- make_envelope: Encrypts plaintext with the test secret
- api_config: agent_config with a 10ms poll interval
- app / client: FastAPI app and TestClient wired to fake_controller
- auth_headers: Valid Authorization + User-Agent headers
"""

import os
import sys
from dataclasses import replace
from typing import Iterable, List, Optional
from unittest.mock import AsyncMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config.settings import AgentConfig, CLIENT_USER_AGENT
from deployment.decryption import encrypt_envelope
from deployment.orchestrator import DeployOrchestrator
from deployment.service_controller import ServiceController
from backups.storage import BackupStore

TEST_TOKEN = "test-token-0123456789"
TEST_SECRET = "correct horse battery staple"

CONFIG_A = b'{"log": {"level": "info"}, "version": "A"}\n'
CONFIG_B = b'{"log": {"level": "debug"}, "version": "B"}\n'


class FakeServiceController(ServiceController):
    """
    Scripted ServiceController for orchestrator tests.

    `active_on_poll` makes is_active return True from that poll number on
    (1-based); None means the service never becomes active. `flaky` lists
    poll numbers whose status query fails, which reads as not active.
    """

    def __init__(self, active_on_poll: Optional[int] = 1, flaky: Iterable[int] = ()):
        self.active_on_poll = active_on_poll
        self.flaky = set(flaky)
        self.restarts: List[str] = []
        self.status_queries: List[str] = []

    async def restart(self, service_name: str) -> None:
        self.restarts.append(service_name)

    async def is_active(self, service_name: str) -> bool:
        self.status_queries.append(service_name)
        poll = len(self.status_queries)
        if poll in self.flaky:
            return False
        return self.active_on_poll is not None and poll >= self.active_on_poll


@pytest.fixture
def agent_config(tmp_path):
    """AgentConfig with credentials set and data under tmp_path."""
    return AgentConfig(
        token=TEST_TOKEN,
        secret=TEST_SECRET,
        save_path=str(tmp_path / "data"),
        poll_interval=1.0,
    )


@pytest.fixture
def config_file(tmp_path):
    """Existing configuration file with content A."""
    path = tmp_path / "etc" / "service.json"
    path.parent.mkdir(parents=True)
    path.write_bytes(CONFIG_A)
    return path


@pytest.fixture
def config_a():
    return CONFIG_A


@pytest.fixture
def config_b():
    return CONFIG_B


@pytest.fixture
def make_controller():
    """Factory for FakeServiceController(active_on_poll=..., flaky=...)."""
    return FakeServiceController


@pytest.fixture
def fake_controller():
    return FakeServiceController(active_on_poll=1)


@pytest.fixture
def orchestrator(agent_config, fake_controller):
    return DeployOrchestrator(agent_config, fake_controller)


@pytest.fixture
def no_sleep():
    """Make the health poll instant; the mock records requested sleeps."""
    with patch('deployment.orchestrator.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def make_envelope():
    def _make(plaintext: bytes = CONFIG_B, secret: str = TEST_SECRET) -> str:
        return encrypt_envelope(plaintext, secret)
    return _make


@pytest.fixture
def auth_headers():
    return {
        "Authorization": f"Bearer {TEST_TOKEN}",
        "User-Agent": CLIENT_USER_AGENT,
    }


@pytest.fixture
def api_config(agent_config):
    """Same as agent_config but with a 10ms poll interval for endpoint tests."""
    return replace(agent_config, poll_interval=0.01)


@pytest.fixture
def app(api_config, fake_controller):
    from main import create_app

    os.makedirs(api_config.save_path, exist_ok=True)
    return create_app(
        api_config,
        orchestrator=DeployOrchestrator(api_config, fake_controller),
        backup_store=BackupStore(api_config.save_path),
    )


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
