import httpx
import pytest

from intune_commander.config import TenantProfile
from intune_commander.errors import UntrustedGraphHostError
from intune_commander.graph_client import GraphClient


def scripted(responses):
    """Transport answering with ``responses`` in order, recording requests."""
    requests = []

    def handler(request):
        requests.append(request)
        return responses[len(requests) - 1]

    return httpx.MockTransport(handler), requests


@pytest.mark.asyncio
async def test_get_resolves_path_and_sends_token(profile, fake_credential, audit_logger):
    transport, requests = scripted([httpx.Response(200, json={"value": []})])
    graph = GraphClient(profile, fake_credential, audit_logger, transport=transport)

    body = await graph.get("v1.0/groups", params={"$top": 5})

    assert body == {"value": []}
    assert requests[0].url.host == "graph.microsoft.com"
    assert requests[0].url.path == "/v1.0/groups"
    assert requests[0].url.params["$top"] == "5"
    assert requests[0].headers["Authorization"] == "Bearer test-token"
    fake_credential.credential.get_token.assert_called_once_with(
        "https://graph.microsoft.com/.default"
    )
    await graph.aclose()


@pytest.mark.asyncio
async def test_throttled_request_is_retried(profile, fake_credential, audit_logger, audit_store):
    transport, requests = scripted(
        [
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(503, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"ok": True}),
        ]
    )
    async with GraphClient(profile, fake_credential, audit_logger, transport=transport) as graph:
        body = await graph.get_url("https://graph.microsoft.com/v1.0/groups?$skiptoken=1")

    assert body == {"ok": True}
    assert len(requests) == 3
    throttled = [e for e in audit_store.list() if e.message == "graph_throttled"]
    assert sorted(e.extra["status"] for e in throttled) == [429, 503]
    assert {e.extra["retry_after"] for e in throttled} == {0.0}


@pytest.mark.asyncio
async def test_retries_exhausted_raise_status_error(profile, fake_credential, audit_logger):
    transport, requests = scripted(
        [httpx.Response(429, headers={"Retry-After": "0"}) for _ in range(3)]
    )
    graph = GraphClient(profile, fake_credential, audit_logger, max_retries=2, transport=transport)

    with pytest.raises(httpx.HTTPStatusError):
        await graph.get("/v1.0/groups")

    assert len(requests) == 3
    await graph.aclose()


@pytest.mark.asyncio
async def test_client_error_is_not_retried(profile, fake_credential, audit_logger, audit_store):
    transport, requests = scripted([httpx.Response(401, text="unauthorized")])
    graph = GraphClient(profile, fake_credential, audit_logger, transport=transport)

    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        await graph.get("/v1.0/groups")

    assert excinfo.value.response.status_code == 401
    assert len(requests) == 1
    [event] = audit_store.list()
    assert event.message == "graph_request_failed"
    assert event.extra["status"] == 401
    await graph.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "https://evil.example.com/steal",
        "http://graph.microsoft.com/v1.0/groups",
        "https://graph.microsoft.com:8443/v1.0/groups",
        "https://graph.microsoft.com.evil.example.com/v1.0/groups",
    ],
)
async def test_foreign_host_never_receives_token(
    url, profile, fake_credential, audit_logger, audit_store
):
    transport, requests = scripted([httpx.Response(200, json={})])
    graph = GraphClient(profile, fake_credential, audit_logger, transport=transport)

    with pytest.raises(UntrustedGraphHostError):
        await graph.get_url(url)

    assert requests == []
    fake_credential.credential.get_token.assert_not_called()
    [event] = audit_store.list()
    assert event.message == "graph_host_rejected"
    await graph.aclose()


@pytest.mark.asyncio
async def test_custom_graph_endpoint_is_trusted(fake_credential, audit_logger):
    profile = TenantProfile(
        name="Sovereign",
        tenant_id="t",
        client_id="c",
        graph_base_url="https://graph.microsoft.us/",
    )
    transport, requests = scripted([httpx.Response(200, json={"value": []})])
    graph = GraphClient(profile, fake_credential, audit_logger, transport=transport)

    await graph.get("/v1.0/groups")

    assert requests[0].url.host == "graph.microsoft.us"
    with pytest.raises(UntrustedGraphHostError):
        await graph.get_url("https://graph.microsoft.com/v1.0/groups")
    await graph.aclose()
