import httpx
import pytest

from app.cache import Cache
from app.domain.scheduling.assignment_service import VisitAssignmentService
from app.domain.scheduling.pattern_service import PatternService
from app.domain.scheduling.repository import ScheduleRepository
from app.services.schedule_api import ScheduleApiClient
from tests.fake_backend import JST, FakeBackend


class FakeRedis:
    """Dict-backed subset of the redis client API used by Cache"""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.store.pop(key, None)
        self.ttls.pop(key, None)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def backend():
    return FakeBackend(tz=JST)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return Cache(client=fake_redis)


@pytest.fixture
async def api_client(backend):
    client = ScheduleApiClient(
        base_url="http://backend",
        token="test-token",
        transport=httpx.ASGITransport(app=backend.app),
    )
    yield client
    await client.aclose()


@pytest.fixture
def repo(api_client, cache):
    return ScheduleRepository(api_client, tz=JST, cache=cache)


@pytest.fixture
def assignment_service(repo):
    return VisitAssignmentService(repo)


@pytest.fixture
def pattern_service(repo):
    return PatternService(repo)
