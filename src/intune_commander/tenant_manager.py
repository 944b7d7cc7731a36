from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .audit import JsonAuditLogger
from .auth import CredentialResolver, DeviceCodePrompt, TenantCredential
from .config import AuthMethod, CommanderConfig, TenantProfile
from .errors import raise_if_cancelled
from .graph_client import GraphClient
from .groups import GroupService
from .intune import AssignmentFilterService, ConditionalAccessPolicyService, PolicySetService

logger = logging.getLogger(__name__)


@dataclass
class TenantExecutionContext:
    profile: TenantProfile
    credential: TenantCredential
    graph: GraphClient
    groups: GroupService
    assignment_filters: AssignmentFilterService
    conditional_access: ConditionalAccessPolicyService
    policy_sets: PolicySetService
    cancel_event: Optional[asyncio.Event] = None

    async def aclose(self) -> None:
        try:
            await self.graph.aclose()
        finally:
            self.credential.close()


class TenantManager:
    """Central registry of tenant profiles and entry point for running operations."""

    def __init__(
        self,
        config: CommanderConfig,
        resolver: Optional[CredentialResolver] = None,
        audit_logger: Optional[JsonAuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.audit = audit_logger or JsonAuditLogger()
        self.resolver = resolver or CredentialResolver(config.token_cache, audit_logger=self.audit)
        self.transport = transport
        self._profiles: Dict[str, TenantProfile] = {profile.id: profile for profile in config.profiles}

    def get_profile(self, profile_id: str) -> TenantProfile:
        profile = self._profiles.get(profile_id)
        if not profile:
            raise KeyError(f"Profile {profile_id} is not configured")
        return profile

    def add_profile(self, profile: TenantProfile) -> None:
        self._profiles[profile.id] = profile
        self.audit.info("profile_added", profile_id=profile.id, tenant_id=profile.tenant_id, name=profile.name)

    def remove_profile(self, profile_id: str) -> None:
        self._profiles.pop(profile_id, None)
        self.audit.info("profile_removed", profile_id=profile_id)

    async def open_context(
        self,
        profile_id: str,
        auth_method: Optional[AuthMethod] = None,
        device_code_prompt: Optional[DeviceCodePrompt] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TenantExecutionContext:
        """Resolve the profile's credential and build its services.

        The caller owns the returned context and must ``aclose`` it, which
        releases both the Graph client and the credential.
        """
        profile = self.get_profile(profile_id)
        credential = await self.resolver.resolve(
            profile,
            auth_method=auth_method,
            device_code_prompt=device_code_prompt,
            cancel_event=cancel_event,
        )
        graph = GraphClient(profile, credential, audit_logger=self.audit, transport=self.transport)
        return TenantExecutionContext(
            profile=profile,
            credential=credential,
            graph=graph,
            groups=GroupService(graph, self.audit),
            assignment_filters=AssignmentFilterService(graph, self.audit),
            conditional_access=ConditionalAccessPolicyService(graph, self.audit),
            policy_sets=PolicySetService(graph, self.audit),
            cancel_event=cancel_event,
        )

    async def run_operation(
        self,
        profile_id: str,
        operation: Callable[[TenantExecutionContext], Awaitable[Any]],
        correlation_id: Optional[str] = None,
        auth_method: Optional[AuthMethod] = None,
        device_code_prompt: Optional[DeviceCodePrompt] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        correlation_id = correlation_id or str(uuid.uuid4())
        context = await self.open_context(
            profile_id,
            auth_method=auth_method,
            device_code_prompt=device_code_prompt,
            cancel_event=cancel_event,
        )
        self.audit.info("operation_started", profile_id=profile_id, correlation_id=correlation_id)
        try:
            raise_if_cancelled(cancel_event)
            result = await operation(context)
        except Exception as exc:
            self.audit.error(
                "operation_failed",
                profile_id=profile_id,
                correlation_id=correlation_id,
                error=type(exc).__name__,
                detail=str(exc),
            )
            raise
        finally:
            await context.aclose()
        self.audit.info("operation_completed", profile_id=profile_id, correlation_id=correlation_id)
        return result
