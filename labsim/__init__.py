"""
Labsim - session core for AI-generated virtual science labs.

Create simulations from a student's prompt, drive one attempt through its
lifecycle, persist progress with auto-save, and host AI-generated
mini-games behind a narrow message contract.

No global state beyond environment-driven defaults. All services are
injected by the caller.
"""

__version__ = "0.1.0"

# Controllers
from .controller import SessionController
from .gamified import GamifiedSessionController, game_progress
from .autosave import AutoSaveScheduler, SaveCadence

# Services
from .service import SimulationService, InMemorySimulationService
from .http_service import HttpSimulationService
from .catalog import SimulationCatalog, build_create_request
from .content import ContentService

# State machine
from .lifecycle import LifecycleEvent, TRANSITIONS, next_status, can_apply, allowed_events

# Mini-game host
from .sandbox import (
    GameHarness,
    GameHost,
    render_game_document,
    iframe_attributes,
    is_completion_alert,
)

# Core schemas
from .schemas import (
    SessionStatus,
    SimulationSession,
    Simulation,
    VirtualLab,
    Observation,
    CreateSimulationRequest,
    StatePatch,
    ServiceAck,
    SimulationPage,
    StepData,
    StepOutcome,
    GameSetup,
    GameState,
    GamePayload,
    ActionResult,
    MixingResult,
    Hint,
    LabEquipment,
    LabChemical,
    ScoreUpdate,
    GameCompleted,
)

# Errors
from .errors import (
    LabSimError,
    ValidationError,
    TransientNetworkError,
    TransitionRejectedError,
    StaleStateError,
    InvalidTransitionError,
    SimulationNotFoundError,
    ContentGenerationError,
)

from .config import Config

__all__ = [
    "__version__",
    # Controllers
    "SessionController",
    "GamifiedSessionController",
    "game_progress",
    "AutoSaveScheduler",
    "SaveCadence",
    # Services
    "SimulationService",
    "InMemorySimulationService",
    "HttpSimulationService",
    "SimulationCatalog",
    "build_create_request",
    "ContentService",
    # State machine
    "LifecycleEvent",
    "TRANSITIONS",
    "next_status",
    "can_apply",
    "allowed_events",
    # Mini-game host
    "GameHarness",
    "GameHost",
    "render_game_document",
    "iframe_attributes",
    "is_completion_alert",
    # Schemas
    "SessionStatus",
    "SimulationSession",
    "Simulation",
    "VirtualLab",
    "Observation",
    "CreateSimulationRequest",
    "StatePatch",
    "ServiceAck",
    "SimulationPage",
    "StepData",
    "StepOutcome",
    "GameSetup",
    "GameState",
    "GamePayload",
    "ActionResult",
    "MixingResult",
    "Hint",
    "LabEquipment",
    "LabChemical",
    "ScoreUpdate",
    "GameCompleted",
    # Errors
    "LabSimError",
    "ValidationError",
    "TransientNetworkError",
    "TransitionRejectedError",
    "StaleStateError",
    "InvalidTransitionError",
    "SimulationNotFoundError",
    "ContentGenerationError",
    # Config
    "Config",
]
