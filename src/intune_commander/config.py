from __future__ import annotations

import uuid
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuthMethod(str, Enum):
    INTERACTIVE = "Interactive"
    CLIENT_SECRET = "ClientSecret"
    DEVICE_CODE = "DeviceCode"


class TenantProfile(BaseModel):
    """Connection details for one Intune tenant.

    Profiles are edited outside this package and treated as read-only here. The
    client secret is only consulted for ``AuthMethod.CLIENT_SECRET``; whether it
    is usable is checked when a credential is resolved, not when the profile is
    loaded, so a half-configured profile can still be stored and fixed later.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    tenant_id: str
    client_id: str
    auth_method: AuthMethod = AuthMethod.INTERACTIVE
    client_secret: Optional[str] = Field(
        default=None,
        description="Application secret, required when auth_method is ClientSecret",
        repr=False,
    )
    graph_base_url: str = Field(
        default="https://graph.microsoft.com",
        description="Graph endpoint. Override for national clouds if needed.",
    )
    default_scopes: List[str] = Field(
        default_factory=lambda: ["https://graph.microsoft.com/.default"]
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("default_scopes")
    @classmethod
    def ensure_scopes(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one scope must be provided per profile")
        return value

    @field_validator("graph_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class TokenCacheSettings(BaseModel):
    name_prefix: str = Field(
        default="intune-commander",
        description="Prefix of the persistent token cache name; the profile id is appended",
    )
    allow_unencrypted_storage: bool = Field(
        default=False,
        description="Fall back to a plaintext cache where no OS keyring is available",
    )

    model_config = ConfigDict(extra="forbid")

    def cache_name(self, profile_id: str) -> str:
        return f"{self.name_prefix}-{profile_id}"


class CommanderConfig(BaseModel):
    profiles: List[TenantProfile] = Field(default_factory=list)
    token_cache: TokenCacheSettings = Field(default_factory=TokenCacheSettings)

    model_config = ConfigDict(extra="forbid")

    @field_validator("profiles")
    @classmethod
    def unique_profile_ids(cls, value: List[TenantProfile]) -> List[TenantProfile]:
        seen = set()
        for profile in value:
            if profile.id in seen:
                raise ValueError(f"Duplicate profile id: {profile.id}")
            seen.add(profile.id)
        return value

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CommanderConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

        return cls(**raw)
