from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GroupTypeLabel(str, Enum):
    MICROSOFT_365 = "Microsoft 365"
    SECURITY = "Security"
    MAIL_ENABLED_SECURITY = "Mail-enabled Security"
    DISTRIBUTION = "Distribution"


class DirectoryObjectKind(str, Enum):
    USER = "user"
    DEVICE = "device"
    GROUP = "group"
    OTHER = "other"

    @classmethod
    def from_odata_type(cls, odata_type: Optional[str]) -> "DirectoryObjectKind":
        """Map a Graph ``@odata.type`` tag such as ``#microsoft.graph.user``."""
        return _ODATA_KINDS.get(odata_type or "", cls.OTHER)


_ODATA_KINDS = {
    "#microsoft.graph.user": DirectoryObjectKind.USER,
    "#microsoft.graph.device": DirectoryObjectKind.DEVICE,
    "#microsoft.graph.group": DirectoryObjectKind.GROUP,
}


class DirectoryGroup(BaseModel):
    id: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    description: Optional[str] = None
    group_types: List[str] = Field(default_factory=list, alias="groupTypes")
    membership_rule: Optional[str] = Field(default=None, alias="membershipRule")
    membership_rule_processing_state: Optional[str] = Field(
        default=None, alias="membershipRuleProcessingState"
    )
    security_enabled: Optional[bool] = Field(default=None, alias="securityEnabled")
    mail_enabled: Optional[bool] = Field(default=None, alias="mailEnabled")
    created_date_time: Optional[datetime] = Field(default=None, alias="createdDateTime")
    mail: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("group_types", mode="before")
    @classmethod
    def none_to_empty(cls, value: Optional[List[str]]) -> List[str]:
        return value or []

    def has_group_type(self, group_type: str) -> bool:
        wanted = group_type.casefold()
        return any(tag.casefold() == wanted for tag in self.group_types)


@dataclass(frozen=True)
class GroupMemberCounts:
    """Direct membership of one group, by member kind.

    ``total`` is ``users + devices + nested_groups``. Service principals,
    contacts and any other kind are left out of every bucket and out of the
    total as well, so ``total`` can be lower than the real member count.
    Whether other kinds should count is pending product sign-off.
    """

    users: int = 0
    devices: int = 0
    nested_groups: int = 0
    total: int = 0
