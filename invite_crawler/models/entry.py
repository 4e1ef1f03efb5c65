from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


INVITE_URL_PREFIX = "https://discord.gg/"


class InviteGuild(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    splash: Optional[str] = None
    banner: Optional[str] = None
    features: List[str] = []
    verification_level: Optional[int] = None
    nsfw_level: Optional[int] = None
    vanity_url_code: Optional[str] = None


class InviteChannel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    type: Optional[int] = None


class Invite(BaseModel):
    """Invite details as returned by Discord's invite lookup endpoint."""

    model_config = ConfigDict(extra="allow")

    code: str
    guild: Optional[InviteGuild] = None
    channel: Optional[InviteChannel] = None
    approximate_member_count: Optional[int] = None
    approximate_presence_count: Optional[int] = None
    expires_at: Optional[str] = None

    @property
    def url(self) -> str:
        return INVITE_URL_PREFIX + self.code


class Entry(BaseModel):
    """One verified invite in the catalog, keyed by the invite code."""

    id: str = Field(..., description="Invite code, unique across the catalog")
    observed_at: int = Field(..., description="Unix seconds of the last successful verification")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Verified invite details")

    @classmethod
    def from_invite(cls, invite: Invite, *, observed_at: Optional[int] = None) -> "Entry":
        if observed_at is None:
            observed_at = int(time.time())
        return cls(
            id=invite.code,
            observed_at=int(observed_at),
            payload=invite.model_dump(mode="json", exclude_none=True),
        )

    def to_document(self) -> Dict[str, Any]:
        """Flatten into the document shape pushed to the search index."""
        doc = dict(self.payload)
        doc["id"] = self.id
        doc["observed_at"] = self.observed_at
        return doc
