from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from .audit import JsonAuditLogger
from .auth import TenantCredential
from .config import TenantProfile
from .errors import UntrustedGraphHostError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 503, 504)


class GraphClient:
    """Profile-scoped async Microsoft Graph client with retry and logging.

    Returns decoded JSON bodies. Failed responses are raised as
    :class:`httpx.HTTPStatusError` once retries are exhausted; callers get the
    transport error as-is.
    """

    def __init__(
        self,
        profile: TenantProfile,
        credential: TenantCredential,
        audit_logger: JsonAuditLogger,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.profile = profile
        self.credential = credential
        self.audit = audit_logger
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.session.aclose()

    async def _auth_header(self, scopes: Iterable[str]) -> Dict[str, str]:
        # azure-identity credentials are synchronous and may block on a browser
        # or device-code prompt.
        token = await asyncio.to_thread(self.credential.get_token, *scopes)
        return {"Authorization": f"Bearer {token.token}"}

    async def request(
        self,
        method: str,
        url: str,
        scopes: Optional[Iterable[str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        self._check_host(url)
        scopes = scopes or self.profile.default_scopes
        headers = dict(kwargs.pop("headers", None) or {})
        headers.update(await self._auth_header(scopes))
        backoff = 1.0

        for attempt in range(1, self.max_retries + 2):
            response = await self.session.request(method, url, headers=headers, **kwargs)
            if response.status_code in RETRYABLE_STATUS and attempt <= self.max_retries:
                retry_after = self._get_retry_after_seconds(response)
                if retry_after is None:
                    retry_after = backoff
                self.audit.warning(
                    "graph_throttled",
                    profile_id=self.profile.id,
                    tenant_id=self.profile.tenant_id,
                    status=response.status_code,
                    retry_after=retry_after,
                    attempt=attempt,
                )
                await asyncio.sleep(retry_after)
                backoff = min(backoff * 2, 30)
                continue

            if response.status_code >= 400:
                self.audit.error(
                    "graph_request_failed",
                    profile_id=self.profile.id,
                    tenant_id=self.profile.tenant_id,
                    status=response.status_code,
                    url=url,
                    body=response.text[:500],
                )
                response.raise_for_status()

            self.audit.debug(
                "graph_request_succeeded",
                profile_id=self.profile.id,
                tenant_id=self.profile.tenant_id,
                status=response.status_code,
                url=url,
            )
            return response

        # Guard only: the final attempt either returns or raises above.
        raise RuntimeError("Maximum retry attempts exceeded for Graph request")

    def _check_host(self, url: str) -> None:
        # The bearer token is only ever sent to the profile's own Graph endpoint,
        # whatever a continuation link says.
        target = httpx.URL(url)
        base = httpx.URL(self.profile.graph_base_url)
        if (target.scheme, target.host, target.port) != (base.scheme, base.host, base.port):
            self.audit.error(
                "graph_host_rejected",
                profile_id=self.profile.id,
                tenant_id=self.profile.tenant_id,
                host=target.host,
            )
            raise UntrustedGraphHostError(
                f"Refusing to send Graph credentials to {target.scheme}://{target.host}"
            )

    def _get_retry_after_seconds(self, response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("Retry-After")
        if retry_after is None:
            return None
        try:
            return float(retry_after)
        except ValueError:
            return None

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.profile.graph_base_url}/{path.lstrip('/')}"
        response = await self.request("GET", url, params=params, headers=headers)
        return response.json()

    async def get_url(self, url: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """GET an absolute URL, e.g. an ``@odata.nextLink`` continuation."""
        response = await self.request("GET", url, headers=headers)
        return response.json()
