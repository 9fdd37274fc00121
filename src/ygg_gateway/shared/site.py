"""Origin-site URL layout."""

from __future__ import annotations

from dataclasses import dataclass

LOGIN_PAGE = "/auth/login"
LOGIN_PROCESS_PAGE = "/auth/process_login"
SEARCH_PAGE = "/engine/search"
DOWNLOAD_TIMER_PAGE = "/engine/start_download_timer"
DOWNLOAD_PAGE = "/engine/download_torrent"


@dataclass(frozen=True, slots=True)
class Site:
    """The origin domain every component addresses, passed in explicitly."""

    domain: str

    @property
    def root(self) -> str:
        return f"https://{self.domain}/"

    def url(self, path: str) -> str:
        return f"https://{self.domain}{path}"

    @property
    def login_page(self) -> str:
        return self.url(LOGIN_PAGE)

    @property
    def login_process_page(self) -> str:
        return self.url(LOGIN_PROCESS_PAGE)

    @property
    def download_timer_page(self) -> str:
        return self.url(DOWNLOAD_TIMER_PAGE)

    def download_url(self, torrent_id: int, token: str) -> str:
        return self.url(f"{DOWNLOAD_PAGE}?id={torrent_id}&token={token}")


def is_session_expired(status: int, url: str) -> bool:
    """Whether a response means the origin dropped the session.

    The site answers a stale session with a 302/307, or serves its login
    page in place of the requested one.
    """
    return status in (302, 307) or LOGIN_PAGE in url
