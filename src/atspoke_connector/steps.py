"""
Integration steps.

Each step declares the entity and relationship types it produces and the
steps it depends on. The scheduler runs them in dependency order against a
shared StepExecutionContext.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from atspoke_connector.client import AtSpokeClient, default_watermark
from atspoke_connector.config import IntegrationInstance
from atspoke_connector.entity_builder import (
    ACCOUNT_TYPE,
    RELATIONSHIP_HAS,
    REQUEST_TYPE,
    REQUEST_TYPE_TYPE,
    TEAM_TYPE,
    USER_TYPE,
    WEBHOOK_TYPE,
    AtSpokeEntityBuilder,
    GraphEntity,
    relationship_type,
)
from atspoke_connector.job_state import JobState
from atspoke_connector.models import (
    AtSpokeRequest,
    AtSpokeRequestType,
    AtSpokeTeam,
    AtSpokeUser,
    AtSpokeWebhook,
)

logger = structlog.get_logger(__name__)

STEP_FETCH_ACCOUNT = "fetch-account"
STEP_FETCH_USERS = "fetch-users"
STEP_FETCH_TEAMS = "fetch-teams"
STEP_FETCH_WEBHOOKS = "fetch-webhooks"
STEP_FETCH_REQUEST_TYPES = "fetch-request-types"
STEP_FETCH_REQUESTS = "fetch-requests"


@dataclass(frozen=True)
class StepEntityMetadata:
    resource_name: str
    type: str
    entity_class: str


@dataclass(frozen=True)
class StepRelationshipMetadata:
    type: str
    relationship_class: str
    source_type: str
    target_type: str


def _has(source_type: str, target_type: str) -> StepRelationshipMetadata:
    return StepRelationshipMetadata(
        type=relationship_type(source_type, RELATIONSHIP_HAS, target_type),
        relationship_class=RELATIONSHIP_HAS,
        source_type=source_type,
        target_type=target_type,
    )


@dataclass
class StepExecutionContext:
    """
    Everything a step needs for one run.

    The account entity is set by fetch-account and read by every later step.
    """

    instance: IntegrationInstance
    client: AtSpokeClient
    job_state: JobState
    builder: AtSpokeEntityBuilder
    started_on: datetime
    last_successful_started_on: datetime | None = None
    account_entity: GraphEntity | None = None

    @property
    def watermark(self) -> datetime:
        """Cutoff for incremental request fetching."""
        return self.last_successful_started_on or default_watermark(self.started_on)

    def require_account(self) -> GraphEntity:
        if self.account_entity is None:
            raise RuntimeError(f"{STEP_FETCH_ACCOUNT} must run before this step")
        return self.account_entity


StepHandler = Callable[[StepExecutionContext], None]


@dataclass(frozen=True)
class IntegrationStep:
    id: str
    name: str
    execution_handler: StepHandler
    entities: tuple[StepEntityMetadata, ...] = ()
    relationships: tuple[StepRelationshipMetadata, ...] = ()
    depends_on: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def fetch_account_details(context: StepExecutionContext) -> None:
    who_am_i = context.client.get_account_info()
    context.account_entity = context.job_state.add_entity(
        context.builder.build_account_entity(who_am_i)
    )
    logger.info("Fetched account", org=who_am_i.org, key=context.account_entity.key)


def _link_to_account(context: StepExecutionContext, account: GraphEntity, entity: GraphEntity) -> GraphEntity:
    stored = context.job_state.add_entity(entity)
    context.job_state.add_relationship(context.builder.build_has_relationship(account, stored))
    return stored


def fetch_users(context: StepExecutionContext) -> None:
    account = context.require_account()

    def handle(user: AtSpokeUser) -> None:
        _link_to_account(context, account, context.builder.build_user_entity(user))

    count = context.client.iterate_users(handle)
    logger.info("Fetched users", count=count)


def fetch_teams(context: StepExecutionContext) -> None:
    account = context.require_account()

    def handle(team: AtSpokeTeam) -> None:
        _link_to_account(context, account, context.builder.build_team_entity(team))

    count = context.client.iterate_teams(handle)
    logger.info("Fetched teams", count=count)


def fetch_webhooks(context: StepExecutionContext) -> None:
    account = context.require_account()

    def handle(webhook: AtSpokeWebhook) -> None:
        _link_to_account(context, account, context.builder.build_webhook_entity(webhook))

    count = context.client.iterate_webhooks(handle)
    logger.info("Fetched webhooks", count=count)


def fetch_request_types(context: StepExecutionContext) -> None:
    account = context.require_account()

    def handle(request_type: AtSpokeRequestType) -> None:
        _link_to_account(context, account, context.builder.build_request_type_entity(request_type))

    count = context.client.iterate_request_types(handle)
    logger.info("Fetched request types", count=count)


def fetch_requests(context: StepExecutionContext) -> None:
    """
    Fetch requests changed since the watermark.

    A request's requestType is linked only if a request type entity with that
    key is already in job state. Unknown keys, and keys belonging to some
    other entity type, are skipped.
    """
    account = context.require_account()
    max_records = context.instance.config.request_limit
    unresolved = 0

    def handle(request: AtSpokeRequest) -> None:
        nonlocal unresolved
        request_entity = _link_to_account(
            context, account, context.builder.build_request_entity(request)
        )
        if not request.request_type:
            return

        request_type_entity = context.job_state.find_entity(request.request_type)
        if request_type_entity is None or request_type_entity.type != REQUEST_TYPE_TYPE:
            unresolved += 1
            return
        context.job_state.add_relationship(
            context.builder.build_has_relationship(request_entity, request_type_entity)
        )

    count = context.client.iterate_requests(context.watermark, handle, max_records=max_records)
    logger.info(
        "Fetched requests",
        count=count,
        watermark=context.watermark.isoformat(),
        max_records=max_records,
        unresolved_request_types=unresolved,
    )


# ---------------------------------------------------------------------------
# Step definitions
# ---------------------------------------------------------------------------

ACCOUNT_STEPS = [
    IntegrationStep(
        id=STEP_FETCH_ACCOUNT,
        name="Fetch Account Details",
        entities=(StepEntityMetadata("atSpoke Account", ACCOUNT_TYPE, "Account"),),
        execution_handler=fetch_account_details,
    ),
]

ACCESS_STEPS = [
    IntegrationStep(
        id=STEP_FETCH_USERS,
        name="Fetch Users",
        entities=(StepEntityMetadata("atSpoke User", USER_TYPE, "User"),),
        relationships=(_has(ACCOUNT_TYPE, USER_TYPE),),
        depends_on=(STEP_FETCH_ACCOUNT,),
        execution_handler=fetch_users,
    ),
    IntegrationStep(
        id=STEP_FETCH_TEAMS,
        name="Fetch Teams",
        entities=(StepEntityMetadata("atSpoke Team", TEAM_TYPE, "UserGroup"),),
        relationships=(_has(ACCOUNT_TYPE, TEAM_TYPE),),
        depends_on=(STEP_FETCH_ACCOUNT,),
        execution_handler=fetch_teams,
    ),
]

WEBHOOK_STEPS = [
    IntegrationStep(
        id=STEP_FETCH_WEBHOOKS,
        name="Fetch Webhooks",
        entities=(StepEntityMetadata("atSpoke Webhook", WEBHOOK_TYPE, "ApplicationEndpoint"),),
        relationships=(_has(ACCOUNT_TYPE, WEBHOOK_TYPE),),
        depends_on=(STEP_FETCH_ACCOUNT,),
        execution_handler=fetch_webhooks,
    ),
]

REQUEST_STEPS = [
    IntegrationStep(
        id=STEP_FETCH_REQUEST_TYPES,
        name="Fetch Request Types",
        entities=(StepEntityMetadata("atSpoke Request Type", REQUEST_TYPE_TYPE, "Configuration"),),
        relationships=(_has(ACCOUNT_TYPE, REQUEST_TYPE_TYPE),),
        depends_on=(STEP_FETCH_ACCOUNT,),
        execution_handler=fetch_request_types,
    ),
    IntegrationStep(
        id=STEP_FETCH_REQUESTS,
        name="Fetch Requests",
        entities=(StepEntityMetadata("atSpoke Request", REQUEST_TYPE, "Record"),),
        relationships=(
            _has(ACCOUNT_TYPE, REQUEST_TYPE),
            _has(REQUEST_TYPE, REQUEST_TYPE_TYPE),
        ),
        depends_on=(STEP_FETCH_REQUEST_TYPES,),
        execution_handler=fetch_requests,
    ),
]

INTEGRATION_STEPS: list[IntegrationStep] = [
    *ACCOUNT_STEPS,
    *ACCESS_STEPS,
    *WEBHOOK_STEPS,
    *REQUEST_STEPS,
]
