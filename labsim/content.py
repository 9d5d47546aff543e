"""
AI Content Service: game setup, action judgement, hints and mini-games.

Every operation has a deterministic fallback (``labsim.fallbacks``). When no
provider is configured, or the model call fails, times out or keeps
returning invalid JSON, the fallback is returned instead and the failure is
logged. Callers never see an exception from this module except
``ValidationError`` for a malformed game prompt.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field

from .config import Config
from .errors import ContentGenerationError, ValidationError
from .fallbacks import (
    fallback_action_result,
    fallback_game,
    fallback_game_setup,
    fallback_hint,
    fallback_instructions,
    fallback_mixing_result,
)
from .llm_utils import LLM_TIMEOUT_SECONDS, call_llm_with_retries
from .logging_utils import log_ai, log_error
from .schemas import (
    ActionResult,
    GamePayload,
    GameSetup,
    GameState,
    Hint,
    LabChemical,
    LabEquipment,
    MixingResult,
    Observation,
    Simulation,
    check_prompt,
)


ResultT = TypeVar("ResultT", bound=BaseModel)

SYSTEM_PROMPT = """
You design interactive virtual science lab activities for school students.
Keep every explanation accurate, safe and age-appropriate for the stated level
(1 = beginner, 5 = advanced). Respond only with JSON matching the requested schema.
"""


class GameInstructions(BaseModel):
    """Short game-style tutorial text."""

    instructions: str = Field(..., min_length=1)


def _context_lines(simulation: Simulation) -> str:
    return (
        f"Experiment: {simulation.title}\n"
        f"Subject: {simulation.subject or 'general science'}\n"
        f"Level: {simulation.level}\n"
        f"Description: {simulation.description}"
    )


class ContentService:
    """LLM-backed content generator with fallbacks.

    Args:
        provider: LLM provider name (defaults to ``Config.LLM_PROVIDER``)
        model: Model identifier (defaults to ``Config.LLM_MODEL``)
        timeout: Upper bound for one model call, in seconds
        max_attempts: Attempts per call when the output fails validation
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        *,
        timeout: float = LLM_TIMEOUT_SECONDS,
        max_attempts: int = 3,
    ) -> None:
        self.provider = provider or Config.LLM_PROVIDER
        self.model = model or Config.LLM_MODEL
        self.timeout = timeout
        self.max_attempts = max_attempts

    @property
    def is_configured(self) -> bool:
        return bool(self.model) and Config.llm_configured(self.provider)

    async def _generate(
        self,
        operation: str,
        *,
        user_prompt: str,
        response_model: type[ResultT],
        fallback: Callable[[], ResultT],
    ) -> ResultT:
        if not self.is_configured:
            log_ai(f"Using fallback {operation} (AI content service not configured)")
            return fallback()

        log_ai(f"Requesting {operation} from {self.provider}/{self.model}")
        try:
            result = await call_llm_with_retries(
                system_prompt=SYSTEM_PROMPT,
                user_prompt=user_prompt,
                llm_provider=self.provider,
                llm_model=self.model,
                response_model=response_model,
                max_attempts=self.max_attempts,
                timeout=self.timeout,
            )
        except Exception as exc:
            error = ContentGenerationError(
                operation=operation, reason=str(exc) or type(exc).__name__
            )
            log_error(f"{error}; using fallback")
            return fallback()
        log_ai(f"{operation} ready")
        return result

    async def generate_instructions(self, simulation: Simulation) -> str:
        """Two or three sentences explaining how to play the lab."""

        prompt = f"""
{_context_lines(simulation)}

Write fun, clear game-style instructions (2-3 sentences) explaining how to drag
equipment into the workspace, what the goal is, and how to score points.
Return {{"instructions": "..."}}.
"""
        result = await self._generate(
            "game instructions",
            user_prompt=prompt,
            response_model=GameInstructions,
            fallback=lambda: GameInstructions(instructions=fallback_instructions(simulation.title)),
        )
        return result.instructions.strip()

    async def initialize_experiment(self, simulation: Simulation) -> GameSetup:
        """Equipment, chemicals, objectives and scoring for a gamified session."""

        prompt = f"""
{_context_lines(simulation)}

Create the game setup: 6-8 pieces of equipment, 3-5 chemicals, game objectives
and scoring criteria (correctAction, observation, completion).
"""
        return await self._generate(
            "game setup",
            user_prompt=prompt,
            response_model=GameSetup,
            fallback=lambda: fallback_game_setup(simulation.subject, simulation.title),
        )

    async def process_game_action(
        self,
        action: str,
        equipment: Optional[LabEquipment],
        target: str,
        game_state: GameState,
        simulation: Simulation,
        *,
        score: int = 0,
    ) -> ActionResult:
        """Judge one equipment action (scoreGain 0-20)."""

        prompt = f"""
A student performed an action in the virtual lab.

Action: {action}
Equipment used: {equipment.name if equipment is not None else 'Unknown'}
Target location: {target}

{_context_lines(simulation)}

Current score: {score}
Previous actions: {len(game_state.selected_equipment)}

Describe what the student did, what happened, a scientific explanation,
scoreGain (0-20), hints, the visual effect, whether the experiment is
complete, and a suggestion for what to do next.
"""
        return await self._generate(
            "action result",
            user_prompt=prompt,
            response_model=ActionResult,
            fallback=lambda: fallback_action_result(action, equipment, target, simulation.title),
        )

    async def process_chemical_mixing(
        self,
        first: LabChemical,
        second: LabChemical,
        game_state: GameState,
        simulation: Simulation,
    ) -> MixingResult:
        """Realistic, safe outcome of mixing two chemicals (scoreGain 0-25)."""

        prompt = f"""
A student is mixing two chemicals.

Chemical 1: {first.name} ({first.concentration or 'n/a'})
Chemical 2: {second.name} ({second.concentration or 'n/a'})
Solutions mixed so far: {len(game_state.mixed_solutions)}

{_context_lines(simulation)}

Give the result, explanation, visual effect, the resulting solution (name,
color, properties), scoreGain (0-25), safety notes and next steps.
"""
        return await self._generate(
            "chemical mixing",
            user_prompt=prompt,
            response_model=MixingResult,
            fallback=lambda: fallback_mixing_result(first, second),
        )

    async def generate_hint(
        self,
        game_state: GameState,
        simulation: Simulation,
        *,
        score: int = 0,
        observations: Sequence[Observation] = (),
    ) -> Hint:
        """An encouraging hint chosen from the student's progress."""

        recent: List[str] = [obs.action for obs in observations[-2:] if obs.action]
        actions_taken = len(game_state.selected_equipment)
        prompt = f"""
A student needs help with their experiment.

{_context_lines(simulation)}

Score: {score}
Actions taken: {actions_taken}
Observations made: {len(observations)}
Recent actions: {', '.join(recent) or 'None yet'}

Give one hint with text, type (tip|encouragement|direction|safety) and
specificity (general|specific).
"""
        return await self._generate(
            "hint",
            user_prompt=prompt,
            response_model=Hint,
            fallback=lambda: fallback_hint(actions_taken, len(observations), simulation.title),
        )

    async def generate_game(
        self,
        prompt: str,
        level: int = 1,
        subject: str = "Science",
    ) -> GamePayload:
        """Generate a complete mini-game from a student's free-text idea.

        Raises:
            ValidationError: If the prompt is empty, shorter than 10 or longer
                than 500 characters (checked before any model call)
        """

        try:
            prompt = check_prompt(prompt)
        except ValueError as exc:
            raise ValidationError(str(exc), field="prompt") from exc

        user_prompt = f"""
Student request: "{prompt}"
Level: {level}
Subject: {subject}

Create an interactive game (not a quiz) with clicking, dragging or building
mechanics. Provide title, description, estimatedTime, learningObjectives,
html, css, javascript, instructions and educationalNote. The javascript must
call reportScore(score) whenever the score changes and reportCompletion(score)
exactly once when the game is won.
"""
        return await self._generate(
            "interactive game",
            user_prompt=user_prompt,
            response_model=GamePayload,
            fallback=lambda: fallback_game(prompt, level, subject),
        )


__all__ = ["ContentService", "GameInstructions", "SYSTEM_PROMPT"]
