"""
Gamified session controller.

Same lifecycle as the classic controller, but progress comes from reward
events instead of procedure steps: every equipment action or chemical
mixing counts toward ``Config.GAME_TOTAL_ACTIONS``, each 20% of progress is
one step, and the AI Content Service judges what happened and how many
points it is worth. The game-specific state (kit, workspace, hints) lives
in ``SimulationSession.game_state`` so auto-save persists it with the rest.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from .config import Config
from .content import ContentService
from .controller import SessionController
from .errors import InvalidTransitionError, ValidationError
from .fallbacks import fallback_game_setup
from .logging_utils import log_info, log_success
from .schemas import (
    ActionResult,
    GameCompleted,
    GameSetup,
    GameState,
    Hint,
    HintRecord,
    LabChemical,
    LabEquipment,
    MixedSolution,
    MixingResult,
    Observation,
    ScoreUpdate,
    SessionStatus,
    Simulation,
    StepOutcome,
)
from .service import SimulationService


STEP_PERCENT = 20


def game_progress(actions_completed: int, total_actions: Optional[int] = None) -> float:
    """Percentage of the game completed after ``actions_completed`` reward events."""

    total = total_actions or Config.GAME_TOTAL_ACTIONS
    return min(100.0, round(actions_completed * 100 / total, 2))


class GamifiedSessionController(SessionController):
    """Controller for the drag-and-drop lab game.

    Args:
        simulation: Simulation record (``gamified`` is expected to be set)
        service: Remote Simulation Service implementation
        content: AI Content Service (a default ``ContentService`` when omitted)
        **kwargs: Passed through to ``SessionController``
    """

    def __init__(
        self,
        simulation: Simulation,
        service: SimulationService,
        *,
        content: Optional[ContentService] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(simulation, service, **kwargs)
        self.content = content or ContentService()
        self.instructions = ""
        self.game = GameState.model_validate(self.session.game_state or {})
        self._action_in_flight = False

    # Game state ------------------------------------------------------------------

    def _sync_game_state(self) -> None:
        self.session.game_state = self.game.model_dump(mode="json", by_alias=True)

    def _setup_from_lab(self) -> Optional[GameSetup]:
        lab = self.simulation.virtual_lab
        if lab is None or not lab.equipment:
            return None
        fallback = fallback_game_setup(self.simulation.subject, self.simulation.title)
        return GameSetup(
            available_equipment=[item.model_copy() for item in lab.equipment],
            available_chemicals=[item.model_copy() for item in lab.chemicals],
            game_objectives=list(lab.objectives) or fallback.game_objectives,
            scoring_criteria=fallback.scoring_criteria,
        )

    async def initialize_game_experiment(self, *, reset: bool = True) -> GameSetup:
        """Load the kit: the lab's own equipment, else AI content, else the fallback.

        ``reset`` clears score, observations and workspace for a fresh game;
        a resumed game keeps what the student already did.
        """

        setup = self._setup_from_lab()
        source = "virtual lab"
        if setup is None:
            setup = await self.content.initialize_experiment(self.simulation)
            source = "content service"
        if not setup.available_equipment:
            setup = fallback_game_setup(self.simulation.subject, self.simulation.title)
            source = "fallback kit"

        if reset:
            self.game = GameState(**setup.model_dump())
            self.session.score = 0
            self.session.observations = []
        else:
            self.game.available_equipment = setup.available_equipment
            self.game.available_chemicals = setup.available_chemicals
            self.game.game_objectives = setup.game_objectives
            self.game.scoring_criteria = setup.scoring_criteria
        self._sync_game_state()
        log_info(
            f"Game kit for {self.session.id} loaded from {source}: "
            f"{len(setup.available_equipment)} equipment, {len(setup.available_chemicals)} chemicals"
        )
        return setup

    async def load_instructions(self) -> str:
        self.instructions = await self.content.generate_instructions(self.simulation)
        return self.instructions

    # Lifecycle -----------------------------------------------------------------------

    async def mount(self) -> None:
        await self.load_instructions()
        await super().mount()
        if (
            self.session.status in (SessionStatus.IN_PROGRESS, SessionStatus.PAUSED)
            and not self.game.available_equipment
        ):
            log_info(f"No equipment in saved game {self.session.id}; reinitializing")
            await self.initialize_game_experiment(reset=False)

    async def start(self) -> bool:
        if not await super().start():
            return False
        await self.initialize_game_experiment()
        await self.autosave.force_save()
        return True

    # Reward events ---------------------------------------------------------------------

    def _require_playing(self, action: str) -> bool:
        if self.session.status is not SessionStatus.IN_PROGRESS:
            self._surface(InvalidTransitionError(current=self.session.status, event=action))
            return False
        if self._action_in_flight:
            log_info(f"Ignoring {action} for {self.session.id}: another action is in flight")
            return False
        return True

    def _find_equipment(self, equipment: Union[LabEquipment, str]) -> Optional[LabEquipment]:
        if isinstance(equipment, LabEquipment):
            return equipment
        for item in self.game.available_equipment:
            if item.id == equipment:
                return item
        self._surface(ValidationError(f"Unknown equipment: {equipment}", field="equipment"))
        return None

    def _find_chemical(self, chemical: Union[LabChemical, str]) -> Optional[LabChemical]:
        if isinstance(chemical, LabChemical):
            return chemical
        for item in self.game.available_chemicals:
            if item.id == chemical:
                return item
        self._surface(ValidationError(f"Unknown chemical: {chemical}", field="chemical"))
        return None

    def _advance(self) -> StepOutcome:
        progress = game_progress(self.game.actions_completed)
        self.session.progress = max(self.session.progress, progress)
        self.session.current_step = max(
            self.session.current_step, int(self.session.progress // STEP_PERCENT)
        )
        return StepOutcome(
            progress=self.session.progress,
            current_step=self.session.current_step,
            completion_ready=self.session.progress >= 100,
        )

    async def use_equipment(
        self,
        equipment: Union[LabEquipment, str],
        zone: str,
    ) -> Optional[ActionResult]:
        """Place a piece of equipment in a workspace zone."""

        if not self._require_playing("use equipment in"):
            return None
        item = self._find_equipment(equipment)
        if item is None:
            return None

        self._action_in_flight = True
        try:
            result = await self.content.process_game_action(
                "use_equipment",
                item,
                zone,
                self.game,
                self.simulation,
                score=self.session.score,
            )
        finally:
            self._action_in_flight = False

        self.game.selected_equipment.append(item)
        self.game.current_action = result.action_description
        self.game.workspace_contents.setdefault(zone, []).append(item.name)
        self.session.score += result.score_gain
        self.session.observations.append(
            Observation(
                step=self.session.current_step,
                text=result.result,
                action=f"Used {item.name} on {zone}",
                result=result.result,
                explanation=result.explanation or None,
            )
        )
        outcome = self._advance()
        self._sync_game_state()
        log_success(f"{item.name} -> {zone}: +{result.score_gain} points")

        if result.experiment_complete or outcome.completion_ready:
            await self._signal_completion_ready(outcome)
        await self.autosave.force_save()
        return result

    async def mix_chemicals(
        self,
        first: Union[LabChemical, str],
        second: Union[LabChemical, str],
    ) -> Optional[MixingResult]:
        """Mix two chemicals in the beaker."""

        if not self._require_playing("mix chemicals in"):
            return None
        chem_a = self._find_chemical(first)
        chem_b = self._find_chemical(second)
        if chem_a is None or chem_b is None:
            return None

        self._action_in_flight = True
        try:
            result = await self.content.process_chemical_mixing(
                chem_a, chem_b, self.game, self.simulation
            )
        finally:
            self._action_in_flight = False

        self.game.mixed_solutions.append(
            MixedSolution(
                components=[chem_a, chem_b],
                result=result.result_solution,
                visual_effect=result.visual_effect,
            )
        )
        self.game.workspace_contents.setdefault("beaker", []).append(result.result_solution.name)
        self.session.score += result.score_gain
        self.session.observations.append(
            Observation(
                step=self.session.current_step,
                text=result.result,
                action=f"Mixed {chem_a.name} with {chem_b.name}",
                result=result.result,
                explanation=result.explanation or None,
            )
        )
        outcome = self._advance()
        self._sync_game_state()
        log_success(f"Mixed {chem_a.name} + {chem_b.name}: +{result.score_gain} points")

        if outcome.completion_ready:
            await self._signal_completion_ready(outcome)
        await self.autosave.force_save()
        return result

    async def request_hint(self) -> Hint:
        hint = await self.content.generate_hint(
            self.game,
            self.simulation,
            score=self.session.score,
            observations=self.session.observations,
        )
        self.game.hints.append(HintRecord(**hint.model_dump()))
        self._sync_game_state()
        return hint

    async def apply_game_message(self, message: Union[ScoreUpdate, GameCompleted]) -> None:
        """Listener for ``labsim.sandbox.GameHost``."""

        if self.session.status is not SessionStatus.IN_PROGRESS:
            log_info(
                f"Ignoring {message.type} from the game: simulation {self.session.id} "
                f"is {self.session.status.value}"
            )
            return
        self.session.score = message.score
        await self.autosave.force_save()
        if isinstance(message, GameCompleted):
            outcome = StepOutcome(
                progress=self.session.progress,
                current_step=self.session.current_step,
                completion_ready=True,
            )
            await self._signal_completion_ready(outcome)

    # Completion ----------------------------------------------------------------------

    def build_final_results(self, final_results: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        results = super().build_final_results(final_results)
        results["gameResults"] = {
            "finalScore": self.session.score,
            "actionsCompleted": self.game.actions_completed,
            "observationsMade": len(self.session.observations),
            "hintsUsed": len(self.game.hints),
        }
        return results

    async def complete(
        self,
        final_results: Optional[Dict[str, Any]] = None,
        *,
        finalize: bool = False,
    ) -> bool:
        # The game itself may declare the experiment finished before 100%.
        return await super().complete(final_results, finalize=finalize or self.completion_ready)


__all__ = ["GamifiedSessionController", "game_progress"]
