"""Bounded retry of an operation across session renewals."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ygg_gateway.session.interfaces import YggClient
from ygg_gateway.shared.exceptions import SessionExpiredError, SessionRenewalExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Renewer = Callable[[], Awaitable[YggClient]]


async def with_session_renewal(
    attempt: Callable[[YggClient], Awaitable[T]],
    client: YggClient,
    renew: Renewer | None,
    *,
    max_renewals: int = 1,
) -> T:
    """Run ``attempt`` and re-run it after renewing the session on expiry.

    Args:
        attempt: The whole originating operation, parameterised by client.
        client: Client for the first attempt.
        renew: Re-authenticates and returns the client to retry with.
            ``None`` (caller-supplied cookies) disables renewal.
        max_renewals: Upper bound on renewals before giving up.

    Raises:
        SessionExpiredError: Expired and ``renew`` is ``None``.
        SessionRenewalExhaustedError: Still expired after ``max_renewals`` renewals.
    """
    renewals = 0
    while True:
        try:
            return await attempt(client)
        except SessionExpiredError as exc:
            if renew is None:
                raise
            if renewals >= max_renewals:
                raise SessionRenewalExhaustedError(
                    f"Session still expired after {renewals} renewal(s)"
                ) from exc
            renewals += 1
            logger.info("session expired, renewing (%d/%d)", renewals, max_renewals)
            client = await renew()
