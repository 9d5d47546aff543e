"""
Pydantic schemas for the labsim session core.

All data structures exchanged with the Remote Simulation Service, the AI
Content Service and the sandboxed mini-game host are defined here.

Design Philosophy:
- Snake_case in Python, camelCase on the wire (alias generator), so payloads
  match the REST service while code stays idiomatic
- Session invariants are validated when a session is built from server data
- Game content models double as structured LLM response models
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .config import Config


PROMPT_MIN_LENGTH = 10
PROMPT_MAX_LENGTH = 500
SUBJECTS = ("chemistry", "physics", "biology", "earth science")


def utcnow() -> datetime:
    """Timezone-aware current time used for every session timestamp."""
    return datetime.now(timezone.utc)


def check_prompt(value: str) -> str:
    """Trim an experiment prompt and enforce its length bounds.

    Raises:
        ValueError: With a message suitable for showing to the student
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("Please describe what experiment you want to create")
    if len(value) < PROMPT_MIN_LENGTH:
        raise ValueError(
            f"Please provide a more detailed description (at least {PROMPT_MIN_LENGTH} characters)"
        )
    if len(value) > PROMPT_MAX_LENGTH:
        raise ValueError(
            f"Description is too long. Please keep it under {PROMPT_MAX_LENGTH} characters"
        )
    return value


class WireModel(BaseModel):
    """Base model: camelCase aliases for the REST wire format."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Session Schemas
# ============================================================================


class SessionStatus(str, Enum):
    """Lifecycle status of one simulation attempt. Exactly one at a time."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class Observation(WireModel):
    """One append-only entry in a session's observation log.

    Classic sessions only fill ``step``/``timestamp``/``text``. Gamified
    sessions also record which action produced the observation and the
    AI's explanation of what happened.
    """

    step: int = Field(..., ge=0, description="1-based procedure step (0 for free actions)")
    timestamp: datetime = Field(default_factory=utcnow)
    text: str = Field(..., description="What the student observed")
    action: Optional[str] = Field(None, description="Action that produced the observation")
    result: Optional[str] = None
    explanation: Optional[str] = Field(None, description="Scientific explanation, if any")


class SimulationSession(WireModel):
    """In-memory copy of one simulation attempt.

    The server remains the source of truth; this copy is the fallback of
    record until the server confirms a mutation. ``version`` is the
    optimistic-concurrency token returned by the server on every accepted
    write.
    """

    id: str = Field(..., description="Opaque id assigned by the service")
    status: SessionStatus = SessionStatus.NOT_STARTED
    progress: float = Field(0.0, ge=0, le=100, description="Percentage complete")
    current_step: int = Field(0, ge=0)
    user_inputs: Dict[str, Any] = Field(default_factory=dict)
    observations: List[Observation] = Field(default_factory=list)
    score: int = Field(0, ge=0, description="Gamified variant only")
    game_state: Dict[str, Any] = Field(default_factory=dict, description="Gamified variant only")
    version: int = Field(0, ge=0)
    started_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_status_invariants(self) -> "SimulationSession":
        if self.status is SessionStatus.COMPLETED:
            if self.progress != 100 or self.completed_at is None:
                raise ValueError("completed sessions require progress=100 and completed_at")
        if self.status is SessionStatus.NOT_STARTED:
            if self.current_step != 0 or self.progress != 0 or self.started_at is not None:
                raise ValueError(
                    "not_started sessions must have current_step=0, progress=0 and no started_at"
                )
        return self


class LabEquipment(WireModel):
    id: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = Field("tools", description="glassware|tools|safety|chemicals")


class LabChemical(WireModel):
    id: str
    name: str
    concentration: str = ""
    hazard: str = Field("safe", description="safe|caution|dangerous")
    color: str = "clear"
    icon: str = ""


class VirtualLab(WireModel):
    """Lab description produced by the service when a simulation is generated."""

    procedure: List[str] = Field(default_factory=list, description="Ordered procedure steps")
    equipment: List[LabEquipment] = Field(default_factory=list)
    chemicals: List[LabChemical] = Field(default_factory=list)
    objectives: List[str] = Field(default_factory=list)


class Simulation(WireModel):
    """Server record for one generated experiment plus its session state."""

    id: str
    student_id: str
    title: str = "Interactive Science Experiment"
    description: str = ""
    subject: Optional[str] = None
    level: int = Field(3, ge=1, le=5)
    prompt: Optional[str] = None
    preferred_duration: int = Field(30, gt=0, description="Minutes")
    gamified: bool = False
    virtual_lab: Optional[VirtualLab] = None
    state: Optional[SimulationSession] = None

    @model_validator(mode="after")
    def _default_state(self) -> "Simulation":
        # Freshly generated simulations may arrive without a state block.
        if self.state is None:
            self.state = SimulationSession(id=self.id)
        return self

    @property
    def total_steps(self) -> int:
        if self.virtual_lab is not None and self.virtual_lab.procedure:
            return len(self.virtual_lab.procedure)
        return Config.DEFAULT_PROCEDURE_STEPS


class CreateSimulationRequest(WireModel):
    """Validated input for ``createSimulation``."""

    student_id: str = Field(..., min_length=1)
    prompt: str
    level: int = Field(3, ge=1, le=5)
    subject: Optional[str] = None
    preferred_duration: int = Field(30, gt=0)

    @field_validator("prompt")
    @classmethod
    def _check_prompt(cls, value: str) -> str:
        return check_prompt(value)

    @field_validator("subject")
    @classmethod
    def _check_subject(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        normalized = value.strip().lower()
        if normalized not in SUBJECTS:
            raise ValueError(f"Subject must be one of: {', '.join(SUBJECTS)}")
        return normalized


class StatePatch(WireModel):
    """Partial session update. Only fields that were explicitly set are sent."""

    status: Optional[SessionStatus] = None
    progress: Optional[float] = Field(None, ge=0, le=100)
    current_step: Optional[int] = Field(None, ge=0)
    user_inputs: Optional[Dict[str, Any]] = None
    observations: Optional[List[Observation]] = None
    score: Optional[int] = Field(None, ge=0)
    game_state: Optional[Dict[str, Any]] = None
    last_active_at: Optional[datetime] = None
    expected_version: Optional[int] = Field(None, ge=0)

    def changed_fields(self) -> Dict[str, Any]:
        """State fields carried by this patch (excluding the version token)."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "expected_version"
        }

    def to_wire(self) -> Dict[str, Any]:
        body = self.model_dump(mode="json", by_alias=True, exclude_unset=True)
        expected = body.pop("expectedVersion", None)
        payload: Dict[str, Any] = {"state": body}
        if expected is not None:
            payload["expectedVersion"] = expected
        return payload


class ServiceAck(WireModel):
    """Acknowledgement returned by mutating service calls."""

    success: bool = True
    version: Optional[int] = None
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class SimulationPage(WireModel):
    """One page of a student's simulations."""

    simulations: List[Simulation] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10


class StepData(WireModel):
    """User data submitted when a procedure step is finished."""

    observation: Optional[str] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)


class StepOutcome(BaseModel):
    """Result of ``record_step`` reported back to the view."""

    progress: float
    current_step: int
    completion_ready: bool = False


# ============================================================================
# Game Content Schemas (also used as LLM response models)
# ============================================================================


class ScoringCriteria(WireModel):
    correct_action: int = 10
    observation: int = 5
    completion: int = 50
    safety: Optional[int] = None


class GameSetup(WireModel):
    """Equipment, chemicals and objectives for a gamified session."""

    available_equipment: List[LabEquipment] = Field(default_factory=list)
    available_chemicals: List[LabChemical] = Field(default_factory=list)
    game_objectives: List[str] = Field(default_factory=list)
    scoring_criteria: ScoringCriteria = Field(default_factory=ScoringCriteria)


class ActionResult(WireModel):
    """AI (or fallback) judgement of one equipment action."""

    action_description: str
    result: str
    explanation: str = ""
    score_gain: int = Field(0, ge=0, le=20)
    hints: List[str] = Field(default_factory=list)
    visual_effect: str = ""
    experiment_complete: bool = False
    next_suggestion: str = ""


class SolutionInfo(WireModel):
    name: str
    color: str = ""
    properties: str = ""


class MixingResult(WireModel):
    """AI (or fallback) outcome of mixing two chemicals."""

    result: str
    explanation: str = ""
    visual_effect: str = ""
    result_solution: SolutionInfo
    score_gain: int = Field(0, ge=0, le=25)
    safety: str = ""
    next_steps: List[str] = Field(default_factory=list)


class Hint(WireModel):
    text: str
    type: str = Field("tip", description="tip|encouragement|direction|safety")
    specificity: str = Field("general", description="general|specific")


class MixedSolution(WireModel):
    components: List[LabChemical]
    result: SolutionInfo
    visual_effect: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class HintRecord(Hint):
    timestamp: datetime = Field(default_factory=utcnow)


def _empty_workspace() -> Dict[str, List[str]]:
    return {"beaker": [], "burette": [], "measuring": [], "observation": []}


class GameState(GameSetup):
    """Gamified session state stored in ``SimulationSession.game_state``."""

    selected_equipment: List[LabEquipment] = Field(default_factory=list)
    mixed_solutions: List[MixedSolution] = Field(default_factory=list)
    hints: List[HintRecord] = Field(default_factory=list)
    current_action: Optional[str] = None
    workspace_contents: Dict[str, List[str]] = Field(default_factory=_empty_workspace)

    @property
    def actions_completed(self) -> int:
        return len(self.selected_equipment) + len(self.mixed_solutions)


class GamePayload(WireModel):
    """A complete generated mini-game rendered verbatim inside the sandbox."""

    title: str = Field("Interactive Science Game", description="Game title")
    description: str = Field("Learn through interactive gameplay")
    estimated_time: str = Field("5-10 minutes")
    learning_objectives: List[str] = Field(default_factory=lambda: ["Learn science concepts"])
    html: str = Field(..., description="Markup for the game body")
    css: str = Field("", description="Styles for the game")
    javascript: str = Field(..., description="Game behaviour; must call reportCompletion(score)")
    instructions: str = "Interact with the game to learn!"
    educational_note: str = "This game teaches scientific concepts through interaction."


# ============================================================================
# Sandbox Messages
# ============================================================================


class ScoreUpdate(BaseModel):
    type: Literal["SCORE_UPDATE"] = "SCORE_UPDATE"
    score: int = Field(..., ge=0)


class GameCompleted(BaseModel):
    type: Literal["GAME_COMPLETED"] = "GAME_COMPLETED"
    score: int = Field(..., ge=0)
    message: str = "Game completed successfully!"


GameMessage = Annotated[Union[ScoreUpdate, GameCompleted], Field(discriminator="type")]
