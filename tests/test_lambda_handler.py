"""Lambda adapter tests: envelope normalization and response dicts."""

from collections.abc import Generator

import pytest

from conftest import TABLE, FakeDynamoClient, make_settings
from invite_redirect.config import get_settings
from invite_redirect.dependencies import ServiceManager
from invite_redirect.enums import IncrementMode
from invite_redirect.lambda_handler import LambdaRuntime, extract_path


@pytest.fixture
def runtime(fake_client: FakeDynamoClient) -> Generator[LambdaRuntime, None, None]:
    manager = ServiceManager(
        settings=make_settings(AMAZON_DYNAMODB_TABLE=None),
        client_factory=lambda config: fake_client,
    )
    runtime = LambdaRuntime(manager)
    yield runtime
    runtime.loop.run_until_complete(manager.cleanup())
    runtime.loop.close()


@pytest.mark.parametrize(
    "event, path",
    [
        ({"rawEvent": {"rawPath": "/a"}, "rawPath": "/b"}, "/a"),
        ({"rawEvent": {"requestContext": {"http": {"path": "/c"}}}}, "/c"),
        ({"rawPath": "/d", "requestContext": {"http": {"path": "/e"}}}, "/d"),
        ({"requestContext": {"http": {"path": "/e"}}}, "/e"),
        ({"rawPath": "/promo%20vip/gold"}, "/promo vip/gold"),
        ({}, None),
        ({"rawEvent": "not-a-dict"}, None),
    ],
)
def test_extract_path(event, path) -> None:
    assert extract_path(event) == path


def test_redirect_with_request_credentials(runtime, fake_client) -> None:
    fake_client.put("SALE#VIP", table="BundleTable", InviteCodes=["a|b|code1"])
    event = {
        "rawPath": "/sale/vip",
        "credentials": {"AMAZON_DYNAMODB_TABLE": "BundleTable", "AMAZON_REGION": "us-east-1"},
    }

    response = runtime.invoke(event)

    assert response == {
        "statusCode": 302,
        "headers": {"Location": "https://chat.whatsapp.com/code1", "Cache-Control": "no-store"},
        "body": "",
    }
    assert fake_client.clicks("SALE#VIP", table="BundleTable") == 1


def test_root_path_is_404(runtime, fake_client) -> None:
    response = runtime.invoke({"rawPath": "/"})

    assert response["statusCode"] == 404
    assert response["headers"] == {"Content-Type": "text/html"}
    assert "Link não encontrado" in response["body"]
    assert fake_client.calls == []


def test_missing_table_everywhere_is_500(runtime, fake_client) -> None:
    response = runtime.invoke({"rawPath": "/sale"})

    assert response["statusCode"] == 500
    assert fake_client.calls == []


def test_invalid_credentials_bundle_is_500(runtime) -> None:
    response = runtime.invoke({"rawPath": "/sale", "credentials": {"DDB_MAX_ATTEMPTS": "0"}})
    assert response["statusCode"] == 500


def test_detached_increment_survives_between_invocations(fake_client) -> None:
    manager = ServiceManager(
        settings=make_settings(CLICK_INCREMENT_MODE=IncrementMode.DETACHED),
        client_factory=lambda config: fake_client,
    )
    runtime = LambdaRuntime(manager)
    fake_client.put("SALE", InviteCodes=["a|b|code1"])
    try:
        first = runtime.invoke({"rawPath": "/sale"})
        second = runtime.invoke({"rawPath": "/sale"})
        runtime.loop.run_until_complete(manager.recorder.drain(timeout=5.0))
    finally:
        runtime.loop.run_until_complete(manager.cleanup())
        runtime.loop.close()

    assert first["statusCode"] == second["statusCode"] == 302
    assert fake_client.clicks("SALE") == 2


@pytest.fixture
def env_settings(monkeypatch):
    monkeypatch.setenv("AMAZON_DYNAMODB_TABLE", TABLE)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


def test_unparseable_tuning_env_uses_defaults(env_settings, fake_client) -> None:
    env_settings.setenv("DDB_MAX_ATTEMPTS", "abc")
    fake_client.put("SALE", InviteCodes=["a|b|code1"])
    manager = ServiceManager(client_factory=lambda config: fake_client)
    runtime = LambdaRuntime(manager)
    try:
        response = runtime.invoke({"rawPath": "/sale"})
    finally:
        runtime.loop.run_until_complete(manager.cleanup())
        runtime.loop.close()

    assert response["statusCode"] == 302
    assert get_settings().DDB_MAX_ATTEMPTS == 2


def test_initialization_failure_is_500_page(env_settings, fake_client) -> None:
    env_settings.setenv("DETACHED_DRAIN_TIMEOUT_SECONDS", "soon")
    runtime = LambdaRuntime(ServiceManager(client_factory=lambda config: fake_client))
    try:
        response = runtime.invoke({"rawPath": "/sale"})
    finally:
        runtime.loop.close()

    assert response["statusCode"] == 500
    assert response["headers"] == {"Content-Type": "text/html"}
    assert "Erro interno" in response["body"]
    assert fake_client.calls == []
