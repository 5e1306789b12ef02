"""
Tests for atSpoke Entity Builder.
"""

import pytest

from atspoke_connector.entity_builder import (
    ACCOUNT_TYPE,
    REQUEST_TYPE,
    REQUEST_TYPE_TYPE,
    AtSpokeEntityBuilder,
    relationship_type,
)
from atspoke_connector.models import (
    AtSpokeRequest,
    AtSpokeRequestType,
    AtSpokeTeam,
    AtSpokeUser,
    AtSpokeWebhook,
    AtSpokeWhoAmI,
)


class TestAtSpokeEntityBuilder:
    """Tests for entity builder."""

    @pytest.fixture
    def builder(self, instance):
        return AtSpokeEntityBuilder(instance)

    @pytest.fixture
    def account(self, builder, sample_whoami_data):
        return builder.build_account_entity(AtSpokeWhoAmI.model_validate(sample_whoami_data))

    def test_build_account_entity(self, account):
        """Test the account entity key, class and name."""
        assert account.key == "at-spoke-account:instance-1"
        assert account.type == ACCOUNT_TYPE
        assert account.classes == ("Account",)
        assert account.get("name") == "atSpoke acme - Acme Helpdesk"
        assert account.get("org") == "acme"

    def test_build_user_entity(self, builder, sample_user_data):
        """Test user properties and raw data."""
        entity = builder.build_user_entity(AtSpokeUser.model_validate(sample_user_data))

        assert entity.key == sample_user_data["id"]
        assert entity.classes == ("User",)
        assert entity.get("email") == "jane@acme.io"
        assert entity.get("displayName") == "Jane Doe"
        assert entity.get("emailVerified") is True
        assert entity.get("active") is True
        # Nested blobs only live in raw data
        assert "profile" not in entity.properties
        assert entity.raw_data["profile"] == {"title": "IT Lead", "location": "Remote"}

    def test_user_without_display_name(self, builder, sample_user_data):
        """Test a user without a display name is named by email."""
        del sample_user_data["displayName"]
        entity = builder.build_user_entity(AtSpokeUser.model_validate(sample_user_data))
        assert entity.get("name") == "jane@acme.io"

    def test_build_team_entity(self, builder, sample_team_data):
        """Test team properties and member ids."""
        entity = builder.build_team_entity(AtSpokeTeam.model_validate(sample_team_data))

        assert entity.classes == ("UserGroup",)
        assert entity.get("name") == "IT"
        assert entity.get("webLink") == "https://acme.askspoke.com/teams/it"
        assert entity.get("memberIds") == ["5f1a00000000000000000001", "5f1a00000000000000000002"]
        assert entity.raw_data["goals"] == {"firstResponse": 3600}

    def test_build_webhook_entity(self, builder, sample_webhook_data):
        """Test webhook endpoint properties."""
        entity = builder.build_webhook_entity(AtSpokeWebhook.model_validate(sample_webhook_data))

        assert entity.classes == ("ApplicationEndpoint",)
        assert entity.get("name") == "Acme Automations"
        assert entity.get("address") == "https://hooks.acme.io/spoke"
        assert entity.get("targetUrl") == "https://hooks.acme.io/spoke"
        assert entity.get("enabled") is True

    def test_build_request_type_entity(self, builder, sample_request_type_data):
        """Test request type properties."""
        entity = builder.build_request_type_entity(
            AtSpokeRequestType.model_validate(sample_request_type_data)
        )

        assert entity.key == "rt-laptop"
        assert entity.type == REQUEST_TYPE_TYPE
        assert entity.classes == ("Configuration",)
        assert entity.get("name") == "Laptop Request"

    def test_build_request_entity(self, builder, sample_request_data):
        """Test request properties and trimmed raw data."""
        entity = builder.build_request_entity(AtSpokeRequest.model_validate(sample_request_data))

        assert entity.key == "req-1"
        assert entity.type == REQUEST_TYPE
        assert entity.classes == ("Record",)
        assert entity.get("name") == "New laptop for onboarding"
        assert entity.get("webLink") == "https://acme.askspoke.com/requests/req-1"
        assert entity.get("requestType") == "rt-laptop"
        assert isinstance(entity.get("updatedOn"), int)
        assert "requestTypeInfo" not in entity.raw_data

    def test_unparsable_dates_omitted(self, builder, sample_request_data):
        """Test an unparsable date is left out."""
        sample_request_data["updatedAt"] = "soon"
        entity = builder.build_request_entity(AtSpokeRequest.model_validate(sample_request_data))
        assert "updatedOn" not in entity.properties

    def test_to_dict(self, account):
        """Test the ingestion dict shape."""
        data = account.to_dict()

        assert data["_key"] == account.key
        assert data["_type"] == ACCOUNT_TYPE
        assert data["_class"] == ["Account"]
        assert data["org"] == "acme"
        assert data["_rawData"] == [{"name": "default", "rawData": account.raw_data}]

    def test_has_relationship(self, builder, account, sample_request_type_data):
        """Test HAS relationship key and type."""
        request_type = builder.build_request_type_entity(
            AtSpokeRequestType.model_validate(sample_request_type_data)
        )
        relationship = builder.build_has_relationship(account, request_type)

        assert relationship.key == "at-spoke-account:instance-1|has|rt-laptop"
        assert relationship.type == "atspoke_account_has_requesttype"
        assert relationship.relationship_class == "HAS"
        assert relationship.to_dict()["_fromEntityKey"] == account.key
        assert relationship.to_dict()["_toEntityKey"] == "rt-laptop"


@pytest.mark.parametrize(
    "source,target,expected",
    [
        ("atspoke_account", "atspoke_user", "atspoke_account_has_user"),
        ("atspoke_request", "atspoke_requesttype", "atspoke_request_has_requesttype"),
        ("atspoke_account", "other_thing", "atspoke_account_has_other_thing"),
    ],
)
def test_relationship_type(source, target, expected):
    """Test relationship type naming."""
    assert relationship_type(source, "HAS", target) == expected
