import httpx
import pytest

from conftest import PagedGraph
from intune_commander.graph_client import GraphClient
from intune_commander.intune import (
    AssignmentFilterService,
    ConditionalAccessPolicyService,
    PolicySetService,
)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "service_cls, path",
    [
        (AssignmentFilterService, "/beta/deviceManagement/assignmentFilters"),
        (ConditionalAccessPolicyService, "/beta/identity/conditionalAccess/policies"),
        (PolicySetService, "/beta/deviceAppManagement/policySets"),
    ],
)
async def test_list_all_pages_through_collection(make_graph, service_cls, path):
    paged = PagedGraph([[{"id": "1"}, {"id": "2"}], [{"id": "3"}]])

    items = await service_cls(make_graph(paged)).list_all()

    assert [item["id"] for item in items] == ["1", "2", "3"]
    assert [request.url.path for request in paged.requests] == [path, path]


@pytest.mark.asyncio
async def test_list_all_audits_count(make_graph, audit_logger, audit_store):
    paged = PagedGraph([[{"id": "1"}]])

    await PolicySetService(make_graph(paged), audit_logger).list_all()

    [event] = [e for e in audit_store.list() if e.message == "policy_sets_listed"]
    assert event.extra == {"count": 1}


def single(status, body=None):
    return httpx.MockTransport(lambda request: httpx.Response(status, json=body or {}))


@pytest.mark.asyncio
async def test_get_returns_item(profile, fake_credential, audit_logger):
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"id": request.url.path.rsplit("/", 1)[-1]})
    )
    graph = GraphClient(profile, fake_credential, audit_logger, transport=transport)

    assert await AssignmentFilterService(graph).get("abc") == {"id": "abc"}


@pytest.mark.asyncio
async def test_get_missing_item_returns_none(profile, fake_credential, audit_logger):
    graph = GraphClient(profile, fake_credential, audit_logger, transport=single(404))

    assert await ConditionalAccessPolicyService(graph).get("missing") is None


@pytest.mark.asyncio
async def test_get_other_failures_propagate(profile, fake_credential, audit_logger):
    graph = GraphClient(profile, fake_credential, audit_logger, transport=single(500))

    with pytest.raises(httpx.HTTPStatusError):
        await PolicySetService(graph).get("boom")
