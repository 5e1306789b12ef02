"""
atSpoke Entity Builder

Converts atSpoke API payloads into graph entities and relationships.

Each entity carries:
- _key: stable key derived from the provider id
- _type / _class: graph schema tags
- assigned properties (flat, nulls dropped)
- _rawData: the original payload, kept for audit
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from atspoke_connector.config import IntegrationInstance
from atspoke_connector.models import (
    AtSpokeRequest,
    AtSpokeRequestType,
    AtSpokeTeam,
    AtSpokeUser,
    AtSpokeWebhook,
    AtSpokeWhoAmI,
)

# Entity types
ACCOUNT_TYPE = "atspoke_account"
USER_TYPE = "atspoke_user"
TEAM_TYPE = "atspoke_team"
WEBHOOK_TYPE = "atspoke_webhook"
REQUEST_TYPE_TYPE = "atspoke_requesttype"
REQUEST_TYPE = "atspoke_request"

RELATIONSHIP_HAS = "HAS"

ACCOUNT_KEY_PREFIX = "at-spoke-account:"


def _clean_properties(properties: dict[str, Any]) -> dict[str, Any]:
    """Drop nulls; the graph store treats a missing property and null the same."""
    return {k: v for k, v in properties.items() if v is not None}


def _epoch_ms(value: datetime | None) -> int | None:
    return int(value.timestamp() * 1000) if value else None


def relationship_type(from_type: str, verb: str, to_type: str) -> str:
    """
    Build a relationship _type such as atspoke_account_has_request.

    A prefix shared by both entity types is only kept once.
    """
    prefix = from_type.split("_", 1)[0] + "_"
    target = to_type[len(prefix):] if to_type.startswith(prefix) else to_type
    return f"{from_type}_{verb.lower()}_{target}"


@dataclass(frozen=True)
class GraphEntity:
    """A typed, keyed node for the asset graph."""

    key: str
    type: str
    classes: tuple[str, ...]
    properties: dict[str, Any] = field(default_factory=dict)
    raw_data: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the graph store's ingestion shape."""
        return {
            "_key": self.key,
            "_type": self.type,
            "_class": list(self.classes),
            **self.properties,
            "_rawData": [{"name": "default", "rawData": self.raw_data}],
        }


@dataclass(frozen=True)
class GraphRelationship:
    """A directed edge between two entities, by key."""

    key: str
    type: str
    relationship_class: str
    from_key: str
    to_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "_key": self.key,
            "_type": self.type,
            "_class": self.relationship_class,
            "_fromEntityKey": self.from_key,
            "_toEntityKey": self.to_key,
            "displayName": self.relationship_class,
        }


class AtSpokeEntityBuilder:
    """
    Builds graph entities from atSpoke payloads.

    Stateless apart from the integration instance, which names and keys
    the account entity.
    """

    def __init__(self, instance: IntegrationInstance):
        self.instance = instance

    def build_account_entity(self, who_am_i: AtSpokeWhoAmI) -> GraphEntity:
        name = f"atSpoke {who_am_i.org} - {self.instance.name}"
        return GraphEntity(
            key=f"{ACCOUNT_KEY_PREFIX}{self.instance.id}",
            type=ACCOUNT_TYPE,
            classes=("Account",),
            properties=_clean_properties({
                "name": name,
                "displayName": name,
                "org": who_am_i.org,
            }),
            raw_data=who_am_i.raw(),
        )

    def build_user_entity(self, user: AtSpokeUser) -> GraphEntity:
        display_name = user.display_name or user.email
        return GraphEntity(
            key=user.id,
            type=USER_TYPE,
            classes=("User",),
            properties=_clean_properties({
                "id": user.id,
                "name": display_name,
                "displayName": display_name,
                "username": user.email,
                "email": user.email,
                "emailVerified": user.is_email_verified,
                "profileCompleted": user.is_profile_completed,
                "status": user.status,
                "active": user.status.upper() == "ACTIVE" if user.status else None,
                "memberships": user.memberships or None,
                "startDate": user.start_date,
            }),
            raw_data=user.raw(),
        )

    def build_team_entity(self, team: AtSpokeTeam) -> GraphEntity:
        return GraphEntity(
            key=team.id,
            type=TEAM_TYPE,
            classes=("UserGroup",),
            properties=_clean_properties({
                "id": team.id,
                "name": team.name,
                "displayName": team.name,
                "slug": team.slug,
                "description": team.description,
                "keywords": team.keywords or None,
                "icon": team.icon,
                "color": team.color,
                "status": team.status,
                "owner": team.owner,
                "org": team.org,
                "email": team.email,
                "webLink": team.permalink,
                "memberIds": team.member_ids or None,
            }),
            raw_data=team.raw(),
        )

    def build_webhook_entity(self, webhook: AtSpokeWebhook) -> GraphEntity:
        return GraphEntity(
            key=webhook.id,
            type=WEBHOOK_TYPE,
            classes=("ApplicationEndpoint",),
            properties=_clean_properties({
                "id": webhook.id,
                "name": webhook.client,
                "displayName": webhook.client,
                "enabled": webhook.enabled,
                "topics": webhook.topics,
                "address": webhook.url,
                "targetUrl": webhook.url,
                "targetServiceName": webhook.client,
                "description": webhook.description,
            }),
            raw_data=webhook.raw(),
        )

    def build_request_type_entity(self, request_type: AtSpokeRequestType) -> GraphEntity:
        return GraphEntity(
            key=request_type.id,
            type=REQUEST_TYPE_TYPE,
            classes=("Configuration",),
            properties=_clean_properties({
                "id": request_type.id,
                "name": request_type.title,
                "displayName": request_type.title,
                "description": request_type.description,
                "status": request_type.status,
                "icon": request_type.icon,
            }),
            raw_data=request_type.raw(),
        )

    def build_request_entity(self, request: AtSpokeRequest) -> GraphEntity:
        # requestTypeInfo duplicates the request type entity; keep it out of raw data
        return GraphEntity(
            key=request.id,
            type=REQUEST_TYPE,
            classes=("Record",),
            properties=_clean_properties({
                "id": request.id,
                "name": request.subject,
                "displayName": request.subject,
                "webLink": request.permalink,
                "email": request.email,
                "status": request.status,
                "requester": request.requester,
                "owner": request.owner,
                "privacyLevel": request.privacy_level,
                "team": request.team,
                "org": request.org,
                "requestType": request.request_type,
                "autoResolve": request.is_auto_resolve,
                "filed": request.is_filed,
                "createdOn": _epoch_ms(request.created_on),
                "updatedOn": _epoch_ms(request.updated_on),
            }),
            raw_data=request.raw(exclude={"request_type_info"}),
        )

    def build_has_relationship(self, source: GraphEntity, target: GraphEntity) -> GraphRelationship:
        return GraphRelationship(
            key=f"{source.key}|{RELATIONSHIP_HAS.lower()}|{target.key}",
            type=relationship_type(source.type, RELATIONSHIP_HAS, target.type),
            relationship_class=RELATIONSHIP_HAS,
            from_key=source.key,
            to_key=target.key,
        )
