from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from azure.core.credentials import AccessToken
from azure.identity import (
    ClientSecretCredential,
    DeviceCodeCredential,
    InteractiveBrowserCredential,
    TokenCachePersistenceOptions,
)

from .audit import JsonAuditLogger
from .config import AuthMethod, TenantProfile, TokenCacheSettings
from .errors import InvalidConfigurationError, raise_if_cancelled

logger = logging.getLogger(__name__)

# Same shape as azure-identity's prompt_callback: (verification_uri, user_code, expires_on).
DeviceCodePrompt = Callable[[str, str, datetime], None]


@dataclass(frozen=True)
class TenantCredential:
    """Credential for one tenant profile, ready to hand to a Graph client.

    ``credential`` is the underlying azure-identity object. Interactive and
    device-code credentials share a persistent token cache keyed by the
    profile id, so a restart does not force a new sign-in. Secret-based
    credentials carry no cache.
    """

    auth_method: AuthMethod
    tenant_id: str
    client_id: str
    credential: Any = field(repr=False, compare=False)
    client_secret: Optional[str] = field(default=None, repr=False)
    token_cache_key: Optional[str] = None
    token_cache_name: Optional[str] = None
    device_code_prompt: Optional[DeviceCodePrompt] = field(default=None, repr=False, compare=False)

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        return self.credential.get_token(*scopes, **kwargs)

    def close(self) -> None:
        close = getattr(self.credential, "close", None)
        if close is not None:
            close()


class CredentialResolver:
    """Builds the azure-identity credential matching a profile's auth method.

    Nothing here talks to the network: interactive and device-code sign-ins
    happen the first time a token is requested, so a bad tenant or consent
    problem only shows up on first use. The single check performed up front is
    that a client-secret profile actually has a secret.
    """

    def __init__(
        self,
        token_cache: Optional[TokenCacheSettings] = None,
        audit_logger: Optional[JsonAuditLogger] = None,
    ):
        self.token_cache = token_cache or TokenCacheSettings()
        self.audit = audit_logger

    async def resolve(
        self,
        profile: TenantProfile,
        auth_method: Optional[AuthMethod] = None,
        device_code_prompt: Optional[DeviceCodePrompt] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TenantCredential:
        method = AuthMethod(auth_method if auth_method is not None else profile.auth_method)

        secret = self._require_secret(profile) if method is AuthMethod.CLIENT_SECRET else None
        raise_if_cancelled(cancel_event, "Credential resolution")

        if method is AuthMethod.CLIENT_SECRET:
            credential = TenantCredential(
                auth_method=method,
                tenant_id=profile.tenant_id,
                client_id=profile.client_id,
                client_secret=secret,
                credential=ClientSecretCredential(
                    tenant_id=profile.tenant_id,
                    client_id=profile.client_id,
                    client_secret=secret,
                ),
            )
        elif method is AuthMethod.INTERACTIVE:
            cache_name = self.token_cache.cache_name(profile.id)
            credential = TenantCredential(
                auth_method=method,
                tenant_id=profile.tenant_id,
                client_id=profile.client_id,
                token_cache_key=profile.id,
                token_cache_name=cache_name,
                credential=InteractiveBrowserCredential(
                    tenant_id=profile.tenant_id,
                    client_id=profile.client_id,
                    cache_persistence_options=self._cache_options(cache_name),
                ),
            )
        elif method is AuthMethod.DEVICE_CODE:
            cache_name = self.token_cache.cache_name(profile.id)
            kwargs: dict = {"cache_persistence_options": self._cache_options(cache_name)}
            if device_code_prompt is not None:
                kwargs["prompt_callback"] = device_code_prompt
            credential = TenantCredential(
                auth_method=method,
                tenant_id=profile.tenant_id,
                client_id=profile.client_id,
                token_cache_key=profile.id,
                token_cache_name=cache_name,
                device_code_prompt=device_code_prompt,
                credential=DeviceCodeCredential(
                    tenant_id=profile.tenant_id,
                    client_id=profile.client_id,
                    **kwargs,
                ),
            )
        else:  # pragma: no cover - AuthMethod is closed
            raise ValueError(f"Unsupported authentication method: {method!r}")

        if self.audit:
            self.audit.info(
                "credential_resolved",
                profile_id=profile.id,
                tenant_id=profile.tenant_id,
                auth_method=method.value,
                token_cache=credential.token_cache_name,
            )
        return credential

    def _require_secret(self, profile: TenantProfile) -> str:
        secret = profile.client_secret
        if secret is None or not secret.strip():
            logger.warning("Profile %s uses ClientSecret auth without a secret", profile.id)
            raise InvalidConfigurationError(
                f"Profile '{profile.name}' uses ClientSecret authentication but no client secret is configured"
            )
        return secret

    def _cache_options(self, cache_name: str) -> TokenCachePersistenceOptions:
        return TokenCachePersistenceOptions(
            name=cache_name,
            allow_unencrypted_storage=self.token_cache.allow_unencrypted_storage,
        )
