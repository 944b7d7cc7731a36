from __future__ import annotations

import asyncio
from typing import Optional


class IntuneCommanderError(Exception):
    """Base class for errors raised by the Intune Commander core."""


class InvalidConfigurationError(IntuneCommanderError, ValueError):
    """A tenant profile cannot be used as configured (e.g. blank client secret)."""


class OperationCancelledError(IntuneCommanderError):
    """The caller signalled cancellation before the operation completed."""


class UntrustedGraphHostError(IntuneCommanderError):
    """A request URL points outside the profile's Graph endpoint; no token is sent."""


def raise_if_cancelled(cancel_event: Optional[asyncio.Event], what: str = "Operation") -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"{what} cancelled")
