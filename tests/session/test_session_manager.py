"""Tests for SessionManager and SharedSession."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from ygg_gateway.session.flaresolverr_client import FlareSolverrCookie, FlareSolverrSolution
from ygg_gateway.session.manager import SessionManager, SharedSession
from ygg_gateway.session.transport import DirectClient, ProxiedClient
from ygg_gateway.shared.cookies import SessionSnapshotStore, parse_snapshot
from ygg_gateway.shared.exceptions import (
    InvalidCredentialsError,
    LoginError,
    NoSessionCookieError,
    RemoteServiceError,
    TransportError,
)
from ygg_gateway.shared.site import Site

DOMAIN = "www.yggtorrent.top"
ROOT = f"https://{DOMAIN}/"
LOGIN = f"https://{DOMAIN}/auth/login"
PROCESS = f"https://{DOMAIN}/auth/process_login"


@pytest.fixture
def store(tmp_path: Path) -> SessionSnapshotStore:
    return SessionSnapshotStore(tmp_path / "sessions")


@pytest.fixture
def manager(fake_curl, store: SessionSnapshotStore) -> SessionManager:
    return SessionManager(
        site=Site(DOMAIN),
        snapshots=store,
        direct_factory=lambda: DirectClient(fake_curl, domain=DOMAIN),
    )


def _login_routes(fake_curl) -> None:
    fake_curl.add("GET", LOGIN, set_cookies={"ygg_": "fresh"})
    fake_curl.add("POST", PROCESS)
    fake_curl.add("GET", ROOT, set_cookies={"late": "1"})


class TestDirectLogin:
    async def test_fresh_login_persists_snapshot(self, manager, fake_curl, store) -> None:
        _login_routes(fake_curl)

        client = await manager.login("alice", "secret", persist=True)

        assert isinstance(client, DirectClient)
        assert client.cookies() == {"account_created": "true", "ygg_": "fresh", "late": "1"}
        assert fake_curl.sent("GET", LOGIN)[0].cookies == {"account_created": "true"}
        assert fake_curl.sent("POST", PROCESS)[0].kwargs["data"] == "id=alice&pass=secret"
        assert parse_snapshot(store.path_for("alice").read_text()) == client.cookies()

    async def test_without_persist_no_snapshot(self, manager, fake_curl, store) -> None:
        _login_routes(fake_curl)

        await manager.login("alice", "secret", persist=False)

        assert not store.path_for("alice").exists()

    async def test_resumes_valid_snapshot(self, manager, fake_curl, store) -> None:
        store.save("alice", "ygg_=stored; account_created=true")
        fake_curl.add("GET", ROOT)

        client = await manager.login("alice", "secret", persist=True)

        assert client.cookies() == {"ygg_": "stored", "account_created": "true"}
        assert fake_curl.sent("GET", LOGIN) == []

    async def test_stale_snapshot_falls_back_to_login(self, manager, fake_curl, store) -> None:
        store.save("alice", "ygg_=stale")
        fake_curl.add("GET", ROOT, final_url=LOGIN)
        fake_curl.add("GET", LOGIN, set_cookies={"ygg_": "fresh"})
        fake_curl.add("POST", PROCESS)
        fake_curl.add("GET", ROOT)

        client = await manager.login("alice", "secret", persist=True)

        assert client.cookies()["ygg_"] == "fresh"
        assert len(fake_curl.sent("GET", LOGIN)) == 1
        assert store.load("alice") == {"account_created": "true", "ygg_": "fresh"}

    async def test_snapshot_ignored_without_persist(self, manager, fake_curl, store) -> None:
        store.save("alice", "ygg_=stored")
        _login_routes(fake_curl)

        client = await manager.login("alice", "secret", persist=False)

        assert client.cookies()["ygg_"] == "fresh"
        assert store.load("alice") == {"ygg_": "stored"}

    async def test_no_session_cookie(self, manager, fake_curl) -> None:
        fake_curl.add("GET", LOGIN)

        with pytest.raises(NoSessionCookieError):
            await manager.login("alice", "secret", persist=False)
        assert fake_curl.closed
        assert fake_curl.sent("POST", PROCESS) == []

    async def test_invalid_credentials(self, manager, fake_curl) -> None:
        fake_curl.add("GET", LOGIN, set_cookies={"ygg_": "fresh"})
        fake_curl.add("POST", PROCESS, status=401)

        with pytest.raises(InvalidCredentialsError):
            await manager.login("alice", "wrong", persist=True)
        assert fake_curl.closed

    async def test_login_page_failure(self, manager, fake_curl) -> None:
        fake_curl.add("GET", LOGIN, status=503)

        with pytest.raises(LoginError) as exc_info:
            await manager.login("alice", "secret", persist=False)
        assert exc_info.value.status == 503

    async def test_root_failure_after_login(self, manager, fake_curl) -> None:
        fake_curl.add("GET", LOGIN, set_cookies={"ygg_": "fresh"})
        fake_curl.add("POST", PROCESS)
        fake_curl.add("GET", ROOT, status=500)

        with pytest.raises(LoginError, match="root page"):
            await manager.login("alice", "secret", persist=False)

    async def test_transport_error_during_resume_propagates(self, manager, fake_curl, store) -> None:
        store.save("alice", "ygg_=stored")

        with pytest.raises(TransportError):
            await manager.login("alice", "secret", persist=True)
        assert fake_curl.closed
        assert store.load("alice") == {"ygg_": "stored"}

    def test_client_from_cookies(self, manager) -> None:
        client = manager.client_from_cookies("ygg_=abc==; cf_clearance=x")

        assert client.cookies() == {"ygg_": "abc==", "cf_clearance": "x"}
        assert not manager.proxied


@pytest.fixture
def flaresolverr() -> AsyncMock:
    fs = AsyncMock()
    fs.create_session.return_value = "s-1"
    fs.get.side_effect = [
        FlareSolverrSolution(url=LOGIN, status=200, cookies=[FlareSolverrCookie(name="ygg_", value="abc")]),
        FlareSolverrSolution(url=ROOT, status=200),
    ]
    fs.post.return_value = FlareSolverrSolution(url=ROOT, status=200)
    return fs


@pytest.fixture
def proxied_manager(flaresolverr: AsyncMock, store: SessionSnapshotStore) -> SessionManager:
    return SessionManager(
        site=Site(DOMAIN),
        snapshots=store,
        direct_factory=MagicMock(),
        flaresolverr=flaresolverr,
    )


class TestProxiedLogin:
    async def test_login(self, proxied_manager, flaresolverr) -> None:
        client = await proxied_manager.login("alice", "secret", persist=True)

        assert isinstance(client, ProxiedClient)
        assert client.session_id == "s-1"
        assert proxied_manager.proxied
        flaresolverr.get.assert_any_await(
            LOGIN,
            session="s-1",
            cookies=[{"name": "account_created", "value": "true", "domain": DOMAIN}],
        )
        flaresolverr.post.assert_awaited_once_with(PROCESS, "id=alice&pass=secret", session="s-1")
        flaresolverr.get.assert_awaited_with(ROOT, session="s-1")

    async def test_continues_without_remote_session(self, proxied_manager, flaresolverr) -> None:
        flaresolverr.create_session.side_effect = RemoteServiceError("no browser")

        client = await proxied_manager.login("alice", "secret", persist=False)

        assert client.session_id is None
        flaresolverr.post.assert_awaited_once_with(PROCESS, "id=alice&pass=secret", session=None)

    async def test_invalid_credentials_destroys_session(self, proxied_manager, flaresolverr) -> None:
        flaresolverr.post.return_value = FlareSolverrSolution(url=PROCESS, status=401)

        with pytest.raises(InvalidCredentialsError):
            await proxied_manager.login("alice", "wrong", persist=False)
        flaresolverr.destroy_session.assert_awaited_once_with("s-1")

    async def test_error_status_is_login_error(self, proxied_manager, flaresolverr) -> None:
        flaresolverr.post.return_value = FlareSolverrSolution(url=PROCESS, status=403)

        with pytest.raises(LoginError) as exc_info:
            await proxied_manager.login("alice", "secret", persist=False)
        assert exc_info.value.status == 403

    async def test_no_session_cookie(self, proxied_manager, flaresolverr) -> None:
        flaresolverr.get.side_effect = [FlareSolverrSolution(url=LOGIN, status=200)]

        with pytest.raises(NoSessionCookieError):
            await proxied_manager.login("alice", "secret", persist=False)
        flaresolverr.post.assert_not_awaited()

    async def test_remote_failure_surfaces(self, proxied_manager, flaresolverr) -> None:
        flaresolverr.get.side_effect = RemoteServiceError("FlareSolverr error (error): timeout")

        with pytest.raises(RemoteServiceError):
            await proxied_manager.login("alice", "secret", persist=False)


def _proxied_client() -> AsyncMock:
    client = AsyncMock()
    client.as_direct = MagicMock(return_value=None)
    return client


class TestSharedSession:
    async def test_renew_transplants_direct_cookies(self, make_fake_curl) -> None:
        shared = DirectClient(make_fake_curl(), domain=DOMAIN)
        shared.replace_cookies({"ygg_": "expired"})
        fresh_session = make_fake_curl()
        fresh = DirectClient(fresh_session, domain=DOMAIN)
        fresh.replace_cookies({"ygg_": "renewed", "account_created": "true"})
        manager = MagicMock()
        manager.login = AsyncMock(return_value=fresh)
        session = SharedSession(manager, shared, username="alice", password="secret")

        renewed = await session.renewer()()

        assert renewed is shared
        assert session.client is shared
        assert session.generation == 1
        assert shared.cookies() == {"ygg_": "renewed", "account_created": "true"}
        assert fresh_session.closed
        manager.discard_snapshot.assert_called_once_with("alice")
        manager.login.assert_awaited_once_with("alice", "secret", persist=True)

    async def test_renew_swaps_proxied_client(self) -> None:
        old, new = _proxied_client(), _proxied_client()
        manager = MagicMock()
        manager.login = AsyncMock(return_value=new)
        session = SharedSession(manager, old, username="alice", password="secret")

        assert await session.renewer()() is new
        assert session.client is new
        old.aclose.assert_awaited_once()
        new.aclose.assert_not_awaited()

    async def test_concurrent_proxied_renewals_share_one_login(self) -> None:
        stale, fresh, spare = _proxied_client(), _proxied_client(), _proxied_client()
        manager = MagicMock()
        manager.login = AsyncMock(side_effect=[fresh, spare])
        session = SharedSession(manager, stale, username="alice", password="secret")
        first, second = session.renewer(), session.renewer()

        renewed = await asyncio.gather(first(), second())

        assert renewed == [fresh, fresh]
        assert manager.login.await_count == 1
        assert session.client is fresh
        stale.aclose.assert_awaited_once()
        fresh.aclose.assert_not_awaited()

    async def test_concurrent_direct_renewals_share_one_login(self, make_fake_curl) -> None:
        shared = DirectClient(make_fake_curl(), domain=DOMAIN)
        fresh = DirectClient(make_fake_curl(), domain=DOMAIN)
        fresh.replace_cookies({"ygg_": "renewed"})
        manager = MagicMock()
        manager.login = AsyncMock(return_value=fresh)
        session = SharedSession(manager, shared, username="alice", password="secret")

        renewed = await asyncio.gather(*(session.renewer()() for _ in range(3)))

        assert renewed == [shared, shared, shared]
        assert manager.login.await_count == 1
        manager.discard_snapshot.assert_called_once_with("alice")
        assert session.generation == 1

    async def test_later_expiry_renews_again(self) -> None:
        stale, fresh, newer = _proxied_client(), _proxied_client(), _proxied_client()
        manager = MagicMock()
        manager.login = AsyncMock(side_effect=[fresh, newer])
        session = SharedSession(manager, stale, username="alice", password="secret")

        await session.renewer()()
        assert await session.renewer()() is newer

        assert manager.login.await_count == 2
        assert session.generation == 2
        fresh.aclose.assert_awaited_once()

    async def test_renewer_tracks_its_own_renewals(self) -> None:
        stale, fresh, newer = _proxied_client(), _proxied_client(), _proxied_client()
        manager = MagicMock()
        manager.login = AsyncMock(side_effect=[fresh, newer])
        session = SharedSession(manager, stale, username="alice", password="secret")
        renew = session.renewer()

        assert await renew() is fresh
        assert await renew() is newer
        assert manager.login.await_count == 2

    async def test_failed_login_keeps_generation(self) -> None:
        stale = _proxied_client()
        manager = MagicMock()
        manager.login = AsyncMock(side_effect=InvalidCredentialsError("Invalid username or password"))
        session = SharedSession(manager, stale, username="alice", password="secret")

        with pytest.raises(InvalidCredentialsError):
            await session.renewer()()

        assert session.generation == 0
        assert session.client is stale
        stale.aclose.assert_not_awaited()

    async def test_aclose(self) -> None:
        client = AsyncMock()
        session = SharedSession(MagicMock(), client, username="alice", password="secret")

        await session.aclose()

        client.aclose.assert_awaited_once()
