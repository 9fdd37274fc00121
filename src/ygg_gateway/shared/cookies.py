"""Cookie parsing helpers and the per-account session snapshot.

Two input forms are handled:
- Session snapshots written after a Direct login: ``k=v;k2=v2`` where an
  entry must contain exactly one ``=`` (anything else is skipped).
- Caller-supplied cookie strings (``cookie=`` query parameter), where values
  may themselves contain ``=``.

This module intentionally avoids logging cookie values.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _tokens(raw: str) -> list[str]:
    tokens: list[str] = []
    for part in raw.splitlines():
        tokens.extend(x.strip() for x in part.split(";") if x.strip())
    return tokens


def parse_snapshot(raw: str) -> dict[str, str]:
    """Parse a snapshot file body, skipping entries without exactly one ``=``."""
    cookies: dict[str, str] = {}
    for token in _tokens(raw):
        parts = token.split("=")
        if len(parts) != 2:
            continue
        key, value = parts[0].strip(), parts[1].strip()
        if key:
            cookies[key] = value
    return cookies


def parse_cookie_header(raw: str) -> dict[str, str]:
    """Parse a raw Cookie header into a dict, splitting each entry on its first ``=``."""
    cookies: dict[str, str] = {}
    for token in _tokens(raw):
        if "=" not in token:
            continue
        key, value = token.split("=", 1)
        key = key.strip()
        if key:
            cookies[key] = value.strip()
    return cookies


def format_cookie_header(cookies: dict[str, str]) -> str:
    """Render cookies the way a Cookie request header carries them."""
    return "; ".join(f"{key}={value}" for key, value in cookies.items())


class SessionSnapshotStore:
    """One ``<username>.cookies`` file per account under ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, username: str) -> Path:
        return self._directory / f"{username}.cookies"

    def load(self, username: str) -> dict[str, str] | None:
        """Return the stored cookies, or ``None`` when no snapshot exists."""
        path = self.path_for(username)
        if not path.exists():
            return None
        cookies = parse_snapshot(path.read_text(encoding="utf-8"))
        logger.debug("restored %d cookie(s) from %s", len(cookies), path)
        return cookies

    def save(self, username: str, cookie_header: str) -> None:
        """Overwrite the snapshot for ``username`` with ``cookie_header``."""
        path = self.path_for(username)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(cookie_header, encoding="utf-8")
        logger.debug("saved session snapshot %s", path)

    def discard(self, username: str) -> None:
        path = self.path_for(username)
        path.unlink(missing_ok=True)
        logger.debug("deleted session snapshot %s", path)
