"""
Pytest configuration and fixtures for atSpoke connector tests.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from pydantic import SecretStr

from atspoke_connector.config import IntegrationConfig, IntegrationInstance


def iso_days_ago(days: float) -> str:
    """ISO timestamp `days` before now, in the provider's format."""
    moment = datetime.now(timezone.utc) - timedelta(days=days)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class FakeAtSpokeAPI:
    """
    In-process stand-in for the atSpoke v1 API.

    Serves list endpoints with start/limit slicing and records every request.
    """

    def __init__(self, resources: dict[str, list[dict]] | None = None, whoami: dict | None = None):
        self.resources = resources or {}
        self.whoami = whoami or {"org": "acme", "id": "u-admin", "email": "admin@acme.io"}
        self.calls: list[httpx.Request] = []
        self.status_overrides: dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        resource = request.url.path.rsplit("/", 1)[-1]

        if resource in self.status_overrides:
            return httpx.Response(self.status_overrides[resource], json={"message": "nope"})
        if resource == "whoami":
            return httpx.Response(200, json=self.whoami)

        items = self.resources.get(resource, [])
        if resource == "webhooks":
            return httpx.Response(200, json={"results": items})

        start = int(request.url.params.get("start", 0))
        limit = int(request.url.params.get("limit", 25))
        return httpx.Response(200, json={"results": items[start:start + limit]})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls_to(self, resource: str) -> list[httpx.Request]:
        return [c for c in self.calls if c.url.path.endswith(f"/{resource}")]


@pytest.fixture
def instance():
    """Configured integration instance."""
    return IntegrationInstance(
        id="instance-1",
        name="Acme Helpdesk",
        config=IntegrationConfig(api_key=SecretStr("test-api-key-123")),
    )


@pytest.fixture
def sample_whoami_data():
    return {"org": "acme", "id": "u-admin", "displayName": "Admin", "email": "admin@acme.io"}


@pytest.fixture
def sample_user_data():
    """Sample user data from atSpoke API."""
    return {
        "id": "5f1a00000000000000000001",
        "displayName": "Jane Doe",
        "email": "jane@acme.io",
        "isEmailVerified": True,
        "isProfileCompleted": False,
        "status": "ACTIVE",
        "profile": {"title": "IT Lead", "location": "Remote"},
        "memberships": ["5f1a0000000000000000aaaa"],
        "startDate": "2020-03-02",
        "theme": "dark",
    }


@pytest.fixture
def sample_team_data():
    """Sample team data from atSpoke API."""
    return {
        "id": "5f1a0000000000000000aaaa",
        "name": "IT",
        "slug": "it",
        "description": "Laptops, access and accounts",
        "keywords": ["laptop", "vpn"],
        "icon": "computer",
        "color": "#336699",
        "status": "ACTIVE",
        "goals": {"firstResponse": 3600},
        "agentList": [
            {"status": "ACTIVE", "teamRole": "ADMIN", "user": "5f1a00000000000000000001"},
            {"status": "ACTIVE", "teamRole": "AGENT", "user": {"id": "5f1a00000000000000000002"}},
        ],
        "createdAt": "2020-01-01T00:00:00.000Z",
        "updatedAt": "2021-01-01T00:00:00.000Z",
        "owner": "5f1a00000000000000000001",
        "org": "acme",
        "email": "it@acme.askspoke.com",
        "permalink": "https://acme.askspoke.com/teams/it",
    }


@pytest.fixture
def sample_webhook_data():
    """Sample webhook data from atSpoke API."""
    return {
        "id": "wh-1",
        "enabled": True,
        "topics": ["request.created", "request.updated"],
        "url": "https://hooks.acme.io/spoke",
        "client": "Acme Automations",
        "description": "Mirror requests into the data lake",
    }


@pytest.fixture
def sample_request_type_data():
    """Sample request type data from atSpoke API."""
    return {
        "id": "rt-laptop",
        "status": "ACTIVE",
        "icon": "laptop",
        "title": "Laptop Request",
        "description": "Order a new laptop",
    }


@pytest.fixture
def sample_request_data():
    """Sample request data from atSpoke API."""
    return {
        "id": "req-1",
        "subject": "New laptop for onboarding",
        "requester": "5f1a00000000000000000001",
        "owner": "5f1a00000000000000000002",
        "status": "OPEN",
        "privacyLevel": "team",
        "team": "5f1a0000000000000000aaaa",
        "org": "acme",
        "permalink": "https://acme.askspoke.com/requests/req-1",
        "requestType": "rt-laptop",
        "requestTypeInfo": {"answers": [{"question": "Model", "answer": "X1"}]},
        "isAutoResolve": False,
        "isFiled": True,
        "email": "jane@acme.io",
        "createdAt": iso_days_ago(2),
        "updatedAt": iso_days_ago(1),
    }


@pytest.fixture
def make_request(sample_request_data):
    """Factory for request payloads with a given id and age in days."""
    def _make(request_id: str, updated_days_ago: float, **overrides) -> dict:
        data = dict(sample_request_data)
        data.pop("requestTypeInfo")
        data.update(
            id=request_id,
            subject=f"Request {request_id}",
            permalink=f"https://acme.askspoke.com/requests/{request_id}",
            updatedAt=iso_days_ago(updated_days_ago),
        )
        data.update(overrides)
        return data
    return _make


@pytest.fixture
def fake_api():
    return FakeAtSpokeAPI()
