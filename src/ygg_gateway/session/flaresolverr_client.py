"""FlareSolverr client for Cloudflare-protected page fetching."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from ygg_gateway.shared.exceptions import RemoteServiceError

logger = logging.getLogger(__name__)

_CREATE_ATTEMPTS = 3


class FlareSolverrCookie(BaseModel):
    name: str
    value: str
    domain: str = ""
    path: str = "/"


class FlareSolverrSolution(BaseModel):
    url: str = ""
    status: int = 0
    response: str = ""
    cookies: list[FlareSolverrCookie] = Field(default_factory=list)
    user_agent: str = Field(default="", alias="userAgent")


class FlareSolverrResponse(BaseModel):
    status: str
    message: str = ""
    solution: FlareSolverrSolution | None = None
    session: str | None = None


class FlareSolverr:
    """Drive a real browser through the FlareSolverr ``/v1`` command API.

    Every command is a JSON envelope POSTed to ``{base_url}/v1``. Request
    commands carry ``maxTimeout`` (milliseconds) and, when one is open, the
    browser session id so cookies persist between calls.
    """

    def __init__(self, base_url: str, *, timeout: int = 60, retry_delay: float = 5.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry_delay = retry_delay

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/v1"

    async def create_session(self) -> str:
        """Open a persistent browser session.

        The first call may race the browser start-up, so up to three attempts
        are made, ``retry_delay`` seconds apart.

        Returns:
            The session id assigned by FlareSolverr.

        Raises:
            RemoteServiceError: If every attempt fails.
        """
        last_err: RemoteServiceError | None = None
        for attempt in range(1, _CREATE_ATTEMPTS + 1):
            try:
                parsed = await self._command({"cmd": "sessions.create"})
            except RemoteServiceError as exc:
                logger.warning("FlareSolverr sessions.create attempt %d/%d failed: %s", attempt, _CREATE_ATTEMPTS, exc)
                last_err = exc
            else:
                if not parsed.session:
                    raise RemoteServiceError("No session ID in FlareSolverr response")
                return parsed.session
            if attempt < _CREATE_ATTEMPTS:
                await asyncio.sleep(self._retry_delay)
        raise last_err or RemoteServiceError(f"FlareSolverr sessions.create failed after {_CREATE_ATTEMPTS} attempts")

    async def destroy_session(self, session_id: str) -> None:
        await self._command({"cmd": "sessions.destroy", "session": session_id})

    async def get(
        self,
        url: str,
        *,
        session: str | None = None,
        cookies: list[dict[str, str]] | None = None,
    ) -> FlareSolverrSolution:
        """Fetch ``url`` in the browser and return the solution.

        Raises:
            RemoteServiceError: If FlareSolverr fails or returns no solution.
        """
        payload = self._request_payload("request.get", url, session=session, cookies=cookies)
        return self._solution(await self._command(payload), url)

    async def post(
        self,
        url: str,
        post_data: str,
        *,
        session: str | None = None,
        cookies: list[dict[str, str]] | None = None,
    ) -> FlareSolverrSolution:
        """Submit ``post_data`` (``application/x-www-form-urlencoded``) to ``url``."""
        payload = self._request_payload("request.post", url, session=session, cookies=cookies)
        payload["postData"] = post_data
        return self._solution(await self._command(payload), url)

    def _request_payload(
        self,
        cmd: str,
        url: str,
        *,
        session: str | None,
        cookies: list[dict[str, str]] | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "cmd": cmd,
            "url": url,
            "maxTimeout": self._timeout * 1000,
        }
        if session:
            payload["session"] = session
        if cookies:
            payload["cookies"] = cookies
        return payload

    @staticmethod
    def _solution(response: FlareSolverrResponse, url: str) -> FlareSolverrSolution:
        if response.solution is None:
            raise RemoteServiceError(f"FlareSolverr returned no solution for {url}")
        logger.debug(
            "FlareSolverr solved %s (status=%s, cookies=%d)",
            url,
            response.solution.status,
            len(response.solution.cookies),
        )
        return response.solution

    async def _command(self, payload: dict[str, Any]) -> FlareSolverrResponse:
        try:
            async with httpx.AsyncClient(timeout=self._timeout + 10) as client:
                resp = await client.post(self.endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"FlareSolverr request failed: {exc!r}") from exc

        # Application errors come back as HTTP 500 with a JSON body, so the
        # body is inspected before the status code.
        try:
            data = FlareSolverrResponse.model_validate(resp.json())
        except (json.JSONDecodeError, ValidationError) as exc:
            if resp.is_error:
                raise RemoteServiceError(
                    f"FlareSolverr HTTP {resp.status_code}: {resp.text[:200]}", status=resp.status_code
                ) from exc
            raise RemoteServiceError(f"FlareSolverr response parse error: {resp.text[:200]}") from exc

        if data.status != "ok":
            raise RemoteServiceError(f"FlareSolverr error ({data.status}): {data.message}", status=resp.status_code)
        return data
