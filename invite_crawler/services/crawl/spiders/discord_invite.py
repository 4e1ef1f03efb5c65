"""Discord invite lookup.

Calls the public, unauthenticated endpoint

    GET https://discord.com/api/v10/invites/{code}?with_counts=true

Unknown or expired invites answer 404 (Discord error code 10006). Rate limited
calls answer 429 with a retry_after hint; those are reported as failures like
any other and the link is dropped for this cycle.
"""
from __future__ import annotations

from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from invite_crawler.errors import VerifyError
from invite_crawler.models.entry import Invite
from ..base import DEFAULT_USER_AGENT, InviteVerifier, invite_code


DISCORD_API_BASE = "https://discord.com/api/v10"


class DiscordInviteVerifier(InviteVerifier):
    name = "discord"

    def __init__(
        self,
        *,
        api_base: str = DISCORD_API_BASE,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = float(timeout)
        self.headers = headers or {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"}
        self._client = client

    def fetch(self, link: str) -> Invite:
        code = invite_code(link)
        if not code:
            raise VerifyError(f"not an invite link: {link!r}")
        url = f"{self.api_base}/invites/{code}"
        params = {"with_counts": "true"}
        try:
            if self._client is not None:
                resp = self._client.get(url, params=params)
            else:
                with httpx.Client(timeout=self.timeout, headers=self.headers) as client:
                    resp = client.get(url, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise VerifyError(f"{code}: {exc}") from exc

        if resp.status_code != 200:
            raise VerifyError(f"{code}: HTTP {resp.status_code}")
        try:
            return Invite.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise VerifyError(f"{code}: malformed invite payload: {exc}") from exc
