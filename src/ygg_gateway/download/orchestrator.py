"""Token/cooldown/download protocol for a single torrent file."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import NoReturn

from ygg_gateway.download.quota import RemainingDownloadsProbe
from ygg_gateway.session.interfaces import YggClient
from ygg_gateway.shared.exceptions import (
    DownloadError,
    QuotaCheckError,
    QuotaExhaustedError,
    RatioInsufficientError,
    SessionExpiredError,
    TokenMissingError,
    YggGatewayError,
)
from ygg_gateway.shared.site import Site, is_session_expired

logger = logging.getLogger(__name__)


class DownloadOrchestrator:
    """Fetch a ``.torrent`` file from the origin site.

    The origin hands out a one-time token, then refuses it until a fixed
    dwell time has elapsed. ``turbo`` skips the wait for accounts that are
    exempt from it.
    """

    def __init__(
        self,
        site: Site,
        probe: RemainingDownloadsProbe,
        *,
        turbo: bool = False,
        cooldown: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._site = site
        self._probe = probe
        self._turbo = turbo
        self._cooldown = cooldown
        self._sleep = sleep

    async def download(self, client: YggClient, torrent_id: int) -> bytes:
        """Return the raw torrent file for ``torrent_id``.

        Raises:
            SessionExpiredError: The token request bounced to the login page.
            TokenMissingError: The timer response carried no token.
            QuotaExhaustedError: The file was refused and no downloads are left today.
            RatioInsufficientError: The file was refused although downloads remain.
            QuotaCheckError: The file was refused and the quota could not be checked.
            DownloadError: Any other unexpected response.
        """
        token = await self._request_token(client, torrent_id)

        if not self._turbo:
            logger.debug("waiting %.0fs before using the download token", self._cooldown)
            await self._sleep(self._cooldown)

        url = self._site.download_url(torrent_id, token)
        logger.debug("download url %s", url)
        status, content = await client.get_bytes(url)

        if 200 <= status < 300:
            logger.info("downloaded torrent %d (%d bytes)", torrent_id, len(content))
            return content
        if status == 302:
            await self._raise_refusal(client, torrent_id)
        raise DownloadError(
            f"Failed to get torrent file: {status} {content.decode('utf-8', errors='replace')}",
            status=status,
        )

    async def _request_token(self, client: YggClient, torrent_id: int) -> str:
        logger.debug("requesting download token for torrent %d", torrent_id)
        response = await client.post_form(self._site.download_timer_page, {"torrent_id": str(torrent_id)})

        if is_session_expired(response.status, response.url):
            raise SessionExpiredError("Session expired while requesting a download token")
        if not response.ok:
            raise DownloadError(f"Failed to get token: {response.status}", status=response.status)

        try:
            payload = json.loads(response.body)
        except json.JSONDecodeError as exc:
            raise DownloadError(f"Invalid download timer response: {response.body[:200]}") from exc

        token = payload.get("token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise TokenMissingError("Token not found in start_download_timer response")
        return token

    async def _raise_refusal(self, client: YggClient, torrent_id: int) -> NoReturn:
        try:
            remaining = await self._probe.remaining(client)
        except YggGatewayError as exc:
            logger.error("error while checking remaining downloads: %s", exc)
            raise QuotaCheckError("Failed to download torrent and check remaining downloads.", status=302) from exc

        if remaining == 0:
            logger.error("no remaining downloads")
            raise QuotaExhaustedError("No remaining downloads", status=302)

        logger.warning(
            "failed to download torrent %d with %d remaining downloads, ratio is probably insufficient",
            torrent_id,
            remaining,
        )
        raise RatioInsufficientError(
            "Failed to download torrent, but you have remaining downloads.", remaining=remaining
        )
