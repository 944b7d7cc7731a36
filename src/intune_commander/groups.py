from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .audit import JsonAuditLogger
from .errors import raise_if_cancelled
from .graph_client import GraphClient
from .models import (
    DirectoryGroup,
    DirectoryObjectKind,
    GroupMemberCounts,
    GroupTypeLabel,
)
from .paging import ItemCallback, PageIterator

logger = logging.getLogger(__name__)

DYNAMIC_MEMBERSHIP = "DynamicMembership"
UNIFIED = "Unified"

GROUP_SELECT = [
    "id",
    "displayName",
    "description",
    "groupTypes",
    "membershipRule",
    "membershipRuleProcessingState",
    "securityEnabled",
    "mailEnabled",
    "createdDateTime",
    "mail",
]
MEMBER_PAGE_SIZE = 999

# Filtering on a multi-valued property is an advanced query; Graph rejects it
# unless eventual consistency is requested.
ADVANCED_QUERY_HEADERS = {"ConsistencyLevel": "eventual"}


def infer_group_type(group: DirectoryGroup) -> GroupTypeLabel:
    """Friendly group-type label derived from a group's flags.

    ``Unified`` wins over the security and mail flags. A group with neither
    flag set is reported as Security.
    """
    if group.has_group_type(UNIFIED):
        return GroupTypeLabel.MICROSOFT_365

    if group.security_enabled:
        if group.mail_enabled:
            return GroupTypeLabel.MAIL_ENABLED_SECURITY
        return GroupTypeLabel.SECURITY

    if group.mail_enabled:
        return GroupTypeLabel.DISTRIBUTION

    return GroupTypeLabel.SECURITY


class GroupService:
    """Reads Entra ID groups and their membership for one tenant."""

    infer_group_type = staticmethod(infer_group_type)

    def __init__(self, graph: GraphClient, audit_logger: Optional[JsonAuditLogger] = None):
        self.graph = graph
        self.audit = audit_logger

    async def list_dynamic_groups(
        self, cancel_event: Optional[asyncio.Event] = None
    ) -> List[DirectoryGroup]:
        params = self._group_query()
        params["$filter"] = f"groupTypes/any(g:g eq '{DYNAMIC_MEMBERSHIP}')"
        self._log("group_listing_started", query="dynamic")
        result: List[DirectoryGroup] = []

        def collect(item: Dict[str, Any]) -> bool:
            result.append(DirectoryGroup.model_validate(item))
            return True

        await self._iterate_groups(params, collect, cancel_event)
        self._log("dynamic_groups_listed", count=len(result))
        return result

    async def list_assigned_groups(
        self, cancel_event: Optional[asyncio.Event] = None
    ) -> List[DirectoryGroup]:
        # Graph cannot express "not any(g eq 'DynamicMembership')" for groups,
        # so every group is fetched and dynamic ones are dropped here.
        self._log("group_listing_started", query="assigned")
        result: List[DirectoryGroup] = []
        scanned = 0

        def collect(item: Dict[str, Any]) -> bool:
            nonlocal scanned
            scanned += 1
            group = DirectoryGroup.model_validate(item)
            if not group.has_group_type(DYNAMIC_MEMBERSHIP):
                result.append(group)
            return True

        await self._iterate_groups(self._group_query(), collect, cancel_event)
        self._log("assigned_groups_listed", count=len(result), scanned=scanned)
        return result

    async def get_member_counts(
        self, group_id: str, cancel_event: Optional[asyncio.Event] = None
    ) -> GroupMemberCounts:
        counts = {
            DirectoryObjectKind.USER: 0,
            DirectoryObjectKind.DEVICE: 0,
            DirectoryObjectKind.GROUP: 0,
            DirectoryObjectKind.OTHER: 0,
        }

        def classify(member: Dict[str, Any]) -> bool:
            counts[DirectoryObjectKind.from_odata_type(member.get("@odata.type"))] += 1
            return True

        self._log("member_count_started", group_id=group_id)
        raise_if_cancelled(cancel_event, "Member count")
        first_page = await self.graph.get(
            f"/v1.0/groups/{group_id}/members",
            params={"$select": "id", "$top": MEMBER_PAGE_SIZE},
        )
        await PageIterator(self.graph, first_page, cancel_event=cancel_event).iterate(classify)

        users = counts[DirectoryObjectKind.USER]
        devices = counts[DirectoryObjectKind.DEVICE]
        nested_groups = counts[DirectoryObjectKind.GROUP]
        self._log(
            "group_members_counted",
            group_id=group_id,
            users=users,
            devices=devices,
            nested_groups=nested_groups,
            other=counts[DirectoryObjectKind.OTHER],
        )
        return GroupMemberCounts(
            users=users,
            devices=devices,
            nested_groups=nested_groups,
            total=users + devices + nested_groups,
        )

    @staticmethod
    def _group_query() -> Dict[str, Any]:
        return {"$select": ",".join(GROUP_SELECT), "$count": "true"}

    async def _iterate_groups(
        self,
        params: Dict[str, Any],
        callback: ItemCallback,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        raise_if_cancelled(cancel_event, "Group listing")
        first_page = await self.graph.get(
            "/v1.0/groups", params=params, headers=ADVANCED_QUERY_HEADERS
        )
        await PageIterator(
            self.graph,
            first_page,
            headers=ADVANCED_QUERY_HEADERS,
            cancel_event=cancel_event,
        ).iterate(callback)

    def _log(self, event: str, **fields: Any) -> None:
        logger.debug("%s %s", event, fields)
        if self.audit:
            self.audit.info(event, profile_id=self.graph.profile.id, **fields)
