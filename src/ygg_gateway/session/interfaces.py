"""Interfaces for the session module."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ygg_gateway.session.transport import DirectClient, YggResponse


@runtime_checkable
class YggClient(Protocol):
    """Capability set shared by the Direct and Proxied transports."""

    async def get(self, url: str) -> YggResponse:
        """Fetch a page.

        Args:
            url: Absolute URL on the origin site.

        Returns:
            Status, decoded body and final URL after redirects.
        """
        ...

    async def post_form(self, url: str, fields: Mapping[str, str]) -> YggResponse:
        """Submit an ``application/x-www-form-urlencoded`` form.

        Args:
            url: Absolute URL on the origin site.
            fields: Form fields, URL-encoded by the transport.

        Returns:
            Status, decoded body and final URL after redirects.
        """
        ...

    async def get_bytes(self, url: str) -> tuple[int, bytes]:
        """Fetch a binary resource without decoding it.

        Returns:
            Tuple of (status, raw body).
        """
        ...

    def as_direct(self) -> DirectClient | None:
        """Return the Direct client exposing its cookie store, or ``None``."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the client."""
        ...
