"""Shared pytest fixtures: an in-memory DynamoDB client and wired-up services."""

import datetime
import threading
from typing import Any, AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from httpx import ASGITransport, AsyncClient

from invite_redirect.config import Settings
from invite_redirect.dependencies import ServiceManager
from invite_redirect.enums import IncrementMode
from invite_redirect.link_selector import LinkSelector
from invite_redirect.main import app
from invite_redirect.service import InviteRedirectService
from invite_redirect.store import INCREMENT_EXPRESSION, StoreClientRegistry
from invite_redirect.usage_recorder import UsageRecorder

TABLE = "Invites"
PARTITION_KEY = "WHATSAPP#INVITELINKS"
NOW = datetime.datetime(2025, 3, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
FRESH = (NOW - datetime.timedelta(minutes=30)).isoformat()
STALE = (NOW - datetime.timedelta(hours=5)).isoformat()

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


class FakeDynamoClient:
    """In-memory stand-in for the low-level DynamoDB client.

    Only GetItem and the click UpdateItem are implemented. The update runs
    under a lock, the same guarantee DynamoDB gives for a single UpdateItem.
    """

    def __init__(self) -> None:
        self.items: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[str] = []
        self.get_item_error: Exception | None = None
        self.update_item_error: Exception | None = None
        self.retry_attempts = 0
        self.closed = False
        self._lock = threading.Lock()

    def put(self, sort_key: str, table: str = TABLE, partition_key: str = PARTITION_KEY, **attributes: Any) -> None:
        item = {"PK": partition_key, "SK": sort_key, **attributes}
        self.items[(table, partition_key, sort_key)] = {k: _serializer.serialize(v) for k, v in item.items()}

    def clicks(self, sort_key: str, table: str = TABLE, partition_key: str = PARTITION_KEY) -> int | None:
        item = self.items.get((table, partition_key, sort_key))
        if item is None or "Clicks" not in item:
            return None
        return int(_deserializer.deserialize(item["Clicks"]))

    def _metadata(self) -> dict[str, Any]:
        return {"ResponseMetadata": {"HTTPStatusCode": 200, "RetryAttempts": self.retry_attempts}}

    def get_item(self, TableName: str, Key: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("get_item")
        if self.get_item_error is not None:
            raise self.get_item_error
        response = self._metadata()
        item = self.items.get((TableName, Key["PK"]["S"], Key["SK"]["S"]))
        if item is not None:
            response["Item"] = dict(item)
        return response

    def update_item(
        self,
        TableName: str,
        Key: dict[str, Any],
        UpdateExpression: str,
        ExpressionAttributeNames: dict[str, str],
        ExpressionAttributeValues: dict[str, Any],
        ReturnValues: str = "NONE",
    ) -> dict[str, Any]:
        self.calls.append("update_item")
        if self.update_item_error is not None:
            raise self.update_item_error
        assert UpdateExpression == INCREMENT_EXPRESSION
        attribute = ExpressionAttributeNames["#counter"]
        zero = int(ExpressionAttributeValues[":zero"]["N"])
        inc = int(ExpressionAttributeValues[":inc"]["N"])
        key = (TableName, Key["PK"]["S"], Key["SK"]["S"])
        with self._lock:
            item = self.items.setdefault(key, {"PK": Key["PK"], "SK": Key["SK"]})
            current = int(item[attribute]["N"]) if attribute in item else zero
            item[attribute] = {"N": str(current + inc)}
            updated = dict(item[attribute])
        response = self._metadata()
        response["Attributes"] = {attribute: updated}
        return response

    def close(self) -> None:
        self.closed = True


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "AMAZON_REGION": "sa-east-1",
        "AMAZON_ACCESS_KEY_ID": None,
        "AMAZON_SECRET_ACCESS_KEY": None,
        "AMAZON_DYNAMODB_TABLE": TABLE,
        "CLICK_INCREMENT_MODE": IncrementMode.SYNC,
        "TEMPLATES_DIR": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_client() -> FakeDynamoClient:
    return FakeDynamoClient()


@pytest.fixture
def mock_logger() -> MagicMock:
    logger = MagicMock()
    logger.info = MagicMock()
    logger.debug = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    return logger


@pytest.fixture
def registry(fake_client: FakeDynamoClient, mock_logger: MagicMock) -> StoreClientRegistry:
    return StoreClientRegistry(mock_logger, client_factory=lambda config: fake_client)


@pytest.fixture
def selector() -> LinkSelector:
    return LinkSelector(clock=lambda: NOW)


@pytest.fixture
def recorder(mock_logger: MagicMock) -> UsageRecorder:
    return UsageRecorder(IncrementMode.SYNC, mock_logger, PARTITION_KEY)


@pytest.fixture
def redirect_service(
    settings: Settings,
    registry: StoreClientRegistry,
    selector: LinkSelector,
    recorder: UsageRecorder,
    mock_logger: MagicMock,
) -> InviteRedirectService:
    return InviteRedirectService(settings, registry, selector, recorder, mock_logger)


@pytest.fixture
def service_manager(settings: Settings, fake_client: FakeDynamoClient) -> ServiceManager:
    return ServiceManager(settings=settings, client_factory=lambda config: fake_client)


@pytest_asyncio.fixture(scope="function")
async def client(service_manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    app.state.service_manager = service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await service_manager.cleanup()
    del app.state.service_manager

