"""
Pydantic models for atSpoke API responses.

The atSpoke v1 API speaks camelCase JSON. Models accept it as-is, keep any
fields we don't declare, and dump back to the provider's shape so entities
can retain the original payload as raw data.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

_DATETIME = TypeAdapter(datetime)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a provider timestamp into an aware UTC datetime.

    Returns None for missing, empty, or unparsable values.
    """
    if value is None or value == "":
        return None
    try:
        parsed = _DATETIME.validate_python(value)
    except ValidationError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class AtSpokeModel(BaseModel):
    """Base for provider payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def raw(self, exclude: set[str] | None = None) -> dict[str, Any]:
        """Provider-shaped copy of this payload (camelCase keys, nulls dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude=exclude)


class AtSpokeWhoAmI(AtSpokeModel):
    """Response from GET /whoami."""

    org: str
    id: str | None = None
    display_name: str | None = None
    email: str | None = None


class AtSpokeUser(AtSpokeModel):
    """atSpoke user."""

    id: str
    display_name: str | None = None
    email: str
    is_email_verified: bool | None = None
    is_profile_completed: bool | None = None
    status: str | None = None
    profile: dict[str, Any] | None = None
    memberships: list[str] = Field(default_factory=list)
    start_date: str | None = None


class AtSpokeAgentListItem(AtSpokeModel):
    """Team membership entry. `user` is either a user id or an embedded user."""

    status: str | None = None
    team_role: str | None = None
    user: str | dict[str, Any] | None = None
    timestamps: dict[str, Any] | None = None

    @property
    def user_id(self) -> str | None:
        if isinstance(self.user, dict):
            return self.user.get("id")
        return self.user


class AtSpokeTeam(AtSpokeModel):
    """atSpoke team."""

    id: str
    name: str | None = None
    slug: str | None = None
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    icon: str | None = None
    color: str | None = None
    status: str | None = None
    goals: dict[str, Any] | None = None
    agent_list: list[AtSpokeAgentListItem] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None
    owner: str | None = None
    org: str | None = None
    email: str | None = None
    permalink: str | None = None
    settings: dict[str, Any] | None = None

    @property
    def member_ids(self) -> list[str]:
        return [a.user_id for a in self.agent_list if a.user_id]


class AtSpokeWebhook(AtSpokeModel):
    """Webhook registered against the org."""

    id: str
    enabled: bool = False
    topics: list[str] = Field(default_factory=list)
    url: str | None = None
    client: str | None = None
    description: str | None = None


class AtSpokeRequestType(AtSpokeModel):
    """Request type (form/template requests are filed against)."""

    id: str
    status: str | None = None
    icon: str | None = None
    title: str | None = None
    description: str | None = None


class AtSpokeRequest(AtSpokeModel):
    """
    atSpoke request - the helpdesk ticket.

    Timestamps stay as the raw strings the API returned; the incremental
    cutoff needs to tell an unparsable value apart from a real one.
    """

    id: str
    subject: str | None = None
    requester: str | None = None
    owner: str | None = None
    status: str | None = None
    privacy_level: str | None = None
    team: str | None = None
    org: str | None = None
    permalink: str | None = None
    request_type: str | None = None
    request_type_info: Any = None
    is_auto_resolve: bool | None = None
    is_filed: bool | None = None
    email: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def updated_on(self) -> datetime | None:
        return parse_timestamp(self.updated_at)

    @property
    def created_on(self) -> datetime | None:
        return parse_timestamp(self.created_at)


class AtSpokeResultsPage(BaseModel):
    """Envelope of every list endpoint."""

    results: list[dict[str, Any]] = Field(default_factory=list)
