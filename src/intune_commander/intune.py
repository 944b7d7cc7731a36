from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from .audit import JsonAuditLogger
from .errors import raise_if_cancelled
from .graph_client import GraphClient
from .paging import PageIterator

BETA = "/beta"


class GraphCollectionService:
    """Read-only access to one Intune collection on the Graph beta endpoint.

    Items are returned as the raw JSON objects Graph sends back.
    """

    collection: str = ""
    event_name: str = ""

    def __init__(self, graph: GraphClient, audit_logger: Optional[JsonAuditLogger] = None):
        self.graph = graph
        self.audit = audit_logger

    @property
    def path(self) -> str:
        return f"{BETA}/{self.collection}"

    async def list_all(self, cancel_event: Optional[asyncio.Event] = None) -> List[Dict[str, Any]]:
        raise_if_cancelled(cancel_event, f"Listing {self.collection}")
        first_page = await self.graph.get(self.path)
        items: List[Dict[str, Any]] = []

        def collect(item: Dict[str, Any]) -> bool:
            items.append(item)
            return True

        await PageIterator(self.graph, first_page, cancel_event=cancel_event).iterate(collect)
        if self.audit:
            self.audit.info(
                self.event_name, profile_id=self.graph.profile.id, count=len(items)
            )
        return items

    async def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.graph.get(f"{self.path}/{item_id}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return None
            raise


class AssignmentFilterService(GraphCollectionService):
    collection = "deviceManagement/assignmentFilters"
    event_name = "assignment_filters_listed"


class ConditionalAccessPolicyService(GraphCollectionService):
    collection = "identity/conditionalAccess/policies"
    event_name = "conditional_access_policies_listed"


class PolicySetService(GraphCollectionService):
    collection = "deviceAppManagement/policySets"
    event_name = "policy_sets_listed"
