"""Shared fixtures: settings, fake backend, HTTP client and session."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from progress_sync.config.settings import Settings
from progress_sync.progress.client import ProgressClient
from progress_sync.progress.identity import IdentitySnapshot
from progress_sync.progress.session import ProgressSession
from tests.fixtures.ids import USER_ID
from tests.fixtures.progress_backend import FakeProgressBackend


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        PROGRESS_API_URL="http://testserver/api",
        PROGRESS_FUNCTION_KEY="test-function-key",
        PROGRESS_REQUEST_TIMEOUT=1.0,
        PROGRESS_SEED_DELAY=0.0,
    )


@pytest.fixture
def backend() -> FakeProgressBackend:
    return FakeProgressBackend()


@pytest_asyncio.fixture
async def client(backend: FakeProgressBackend, settings: Settings) -> AsyncIterator[ProgressClient]:
    progress_client = ProgressClient.from_settings(settings, transport=backend.transport())
    yield progress_client
    await progress_client.aclose()


@pytest_asyncio.fixture
async def session(client: ProgressClient, settings: Settings) -> AsyncIterator[ProgressSession]:
    yield ProgressSession(client, settings=settings, identity=IdentitySnapshot(api_user_id=USER_ID))
