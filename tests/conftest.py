"""Shared fixtures: a fake tenant credential and a paged Graph simulator."""

import uuid
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import httpx
import pytest
from azure.core.credentials import AccessToken

from intune_commander.audit import InMemoryAuditStore, JsonAuditLogger
from intune_commander.auth import TenantCredential
from intune_commander.config import AuthMethod, TenantProfile
from intune_commander.graph_client import GraphClient


class PagedGraph:
    """Serves ``pages`` as one Graph collection linked by ``@odata.nextLink``.

    ``on_page`` is called with the zero-based page index after each page is
    served. ``failures`` maps a page index to the status code to answer with.
    """

    def __init__(
        self,
        pages: List[List[Dict[str, Any]]],
        on_page: Optional[Callable[[int], None]] = None,
        failures: Optional[Dict[int, int]] = None,
    ):
        self.pages = pages
        self.on_page = on_page
        self.failures = failures or {}
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.url.params.get("$skiptoken")
        index = int(token) if token else 0

        if index in self.failures:
            return httpx.Response(self.failures[index], json={"error": {"code": "Forbidden"}})

        body: Dict[str, Any] = {"value": self.pages[index] if self.pages else []}
        if index + 1 < len(self.pages):
            body["@odata.nextLink"] = (
                f"https://graph.microsoft.com{request.url.path}?$skiptoken={index + 1}"
            )
        if self.on_page:
            self.on_page(index)
        return httpx.Response(200, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def group(group_id: str, group_types=None, security=True, mail=False) -> Dict[str, Any]:
    return {
        "id": group_id,
        "displayName": f"Group {group_id}",
        "groupTypes": group_types if group_types is not None else [],
        "securityEnabled": security,
        "mailEnabled": mail,
        "createdDateTime": "2024-03-01T10:00:00Z",
    }


def member(odata_type: str) -> Dict[str, Any]:
    return {"@odata.type": odata_type, "id": str(uuid.uuid4())}


@pytest.fixture
def profile():
    return TenantProfile(
        id=str(uuid.uuid4()),
        name="Contoso",
        tenant_id=str(uuid.uuid4()),
        client_id=str(uuid.uuid4()),
    )


@pytest.fixture
def fake_credential(profile):
    inner = MagicMock()
    inner.get_token.return_value = AccessToken("test-token", 4102444800)
    return TenantCredential(
        auth_method=AuthMethod.INTERACTIVE,
        tenant_id=profile.tenant_id,
        client_id=profile.client_id,
        credential=inner,
        token_cache_key=profile.id,
    )


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def audit_logger(audit_store):
    return JsonAuditLogger(name="intune_commander.tests", store=audit_store)


@pytest.fixture
def make_graph(profile, fake_credential, audit_logger):
    def factory(paged: PagedGraph, **kwargs) -> GraphClient:
        return GraphClient(
            profile, fake_credential, audit_logger, transport=paged.transport, **kwargs
        )

    return factory
