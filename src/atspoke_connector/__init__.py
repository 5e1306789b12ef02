"""
atSpoke Graph Connector

Pulls account, user, team, webhook, request type and request data from the
atSpoke helpdesk API and maps it into entities and relationships for an
asset graph.

Features:
- Dependency-ordered integration steps
- Incremental request sync (last run watermark, 14 day lookback)
- Optional per-run request cap
- Idempotent entity registration by key

Quick Start:
    pip install atspoke-graph-connector
    atspoke-graph setup    # Interactive configuration
    atspoke-graph test     # Verify credentials
    atspoke-graph sync     # Run every step
"""

from atspoke_connector.connector import AtSpokeConnector
from atspoke_connector.client import (
    AtSpokeClient,
    AtSpokeAPIError,
    AtSpokeAuthenticationError,
    should_stop_fetching_requests,
)
from atspoke_connector.config import (
    ConfigurationError,
    IntegrationConfig,
    IntegrationInstance,
    parse_count,
)
from atspoke_connector.models import (
    AtSpokeRequest,
    AtSpokeRequestType,
    AtSpokeTeam,
    AtSpokeUser,
    AtSpokeWebhook,
    AtSpokeWhoAmI,
)
from atspoke_connector.entity_builder import (
    AtSpokeEntityBuilder,
    GraphEntity,
    GraphRelationship,
)
from atspoke_connector.job_state import InMemoryJobState, JobState
from atspoke_connector.scheduler import RunResult, StepGraphError, StepScheduler
from atspoke_connector.state import ExecutionHistory, StateManager
from atspoke_connector.steps import INTEGRATION_STEPS, IntegrationStep, StepExecutionContext

__version__ = "1.0.0"
__all__ = [
    # Main connector
    "AtSpokeConnector",

    # API client
    "AtSpokeClient",
    "AtSpokeAPIError",
    "AtSpokeAuthenticationError",
    "should_stop_fetching_requests",

    # Config
    "ConfigurationError",
    "IntegrationConfig",
    "IntegrationInstance",
    "parse_count",

    # Models
    "AtSpokeRequest",
    "AtSpokeRequestType",
    "AtSpokeTeam",
    "AtSpokeUser",
    "AtSpokeWebhook",
    "AtSpokeWhoAmI",

    # Graph output
    "AtSpokeEntityBuilder",
    "GraphEntity",
    "GraphRelationship",
    "InMemoryJobState",
    "JobState",

    # Steps
    "INTEGRATION_STEPS",
    "IntegrationStep",
    "StepExecutionContext",
    "RunResult",
    "StepGraphError",
    "StepScheduler",

    # State management
    "ExecutionHistory",
    "StateManager",
]
