"""Titration lab walkthrough for the classic and gamified session controllers.

By default the example runs offline against the in-memory service and the
built-in fallback content (no LLM calls, no server):

    uv run python examples/titration/run.py

Play the drag-and-drop variant instead of the step-by-step procedure:

    uv run python examples/titration/run.py --gamified

Point it at a running Remote Simulation Service:

    uv run python examples/titration/run.py --api-url http://localhost:5000/api

Environment variables used when AI content is wanted:
- `LLM_PROVIDER` (e.g., `google`)
- `LLM_MODEL` (e.g., `gemini-2.5-flash`)
- Provider-specific API key (e.g., `GOOGLE_API_KEY`)
"""

from __future__ import annotations

import argparse
import asyncio
import json

from labsim import (
    Config,
    ContentService,
    GameHarness,
    GameHost,
    GamifiedSessionController,
    HttpSimulationService,
    InMemorySimulationService,
    LabSimError,
    SessionController,
    SimulationCatalog,
    StepData,
    StepOutcome,
)

PROMPT = "Find the concentration of hydrochloric acid by titration with sodium hydroxide"

READINGS = [
    ("Goggles on, burette rinsed with NaOH", {}),
    ("Burette filled to 0.00 mL", {"initialVolume": 0.0}),
    ("25.0 mL of HCl pipetted into the flask with 3 drops of phenolphthalein", {"acidVolume": 25.0}),
    ("Faint pink colour persists after 24.60 mL", {"finalVolume": 24.6}),
    ("Concentration works out to 0.098 M", {"concentration": 0.098}),
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Virtual titration lab")
    parser.add_argument("--student", default="student-demo", help="Student id")
    parser.add_argument("--gamified", action="store_true", help="Play the drag-and-drop variant")
    parser.add_argument("--api-url", default=None, help="Remote Simulation Service base URL")
    parser.add_argument("--level", type=int, default=3, help="Difficulty level (1-5)")
    return parser.parse_args()


async def run_classic(controller: SessionController) -> None:
    async def on_ready(outcome: StepOutcome) -> None:
        print(f"Procedure finished at {outcome.progress:.0f}%; submitting results")

    controller.completion_listeners.append(on_ready)

    async with controller:
        for index, (observation, inputs) in enumerate(READINGS):
            outcome = await controller.record_step(index, StepData(observation=observation, inputs=inputs))
            if outcome is None:
                break
            print(f"Step {outcome.current_step}: {observation} ({outcome.progress:.0f}%)")

        # A student stepping away mid-lab
        await controller.pause()
        await controller.resume()

        await controller.complete({"conclusion": "HCl concentration is about 0.098 M"})


async def run_gamified(controller: GamifiedSessionController) -> None:
    async with controller:
        print(controller.instructions)
        moves = [
            ("burette_stand", "burette"),
            ("burette", "burette"),
            ("conical_flask", "beaker"),
            ("white_tile", "observation"),
            ("pipette", "measuring"),
        ]
        for equipment, zone in moves:
            result = await controller.use_equipment(equipment, zone)
            if result is None:
                break
            print(f"{result.action_description}: {result.result} (+{result.score_gain})")

        mixed = await controller.mix_chemicals("hcl_solution", "phenolphthalein")
        if mixed is not None:
            print(f"Mixing: {mixed.result}")
        hint = await controller.request_hint()
        print(f"Hint ({hint.type}): {hint.text}")

        # Mini-game bonus round, driven headlessly through the sandbox contract.
        game = await controller.content.generate_game("A game about acids, bases and indicators")
        host = GameHost([controller.apply_game_message])
        harness = GameHarness()
        harness.report_score(controller.session.score + 50)
        harness.alert(f"Congratulations! You finished {game.title}")
        await host.drain(harness)

        await controller.complete()


async def main(args: argparse.Namespace) -> None:
    if args.api_url:
        service = HttpSimulationService(args.api_url)
    else:
        service = InMemorySimulationService()
    catalog = SimulationCatalog(service)

    print(Config.display())
    try:
        simulation = await catalog.create(
            args.student, PROMPT, level=args.level, subject="chemistry"
        )
    except LabSimError as exc:
        print(f"[warning] {exc}")
        return

    if args.gamified:
        controller = GamifiedSessionController(
            simulation,
            service,
            content=ContentService(),
            refresh_listeners=[catalog.refresh],
        )
        await run_gamified(controller)
    else:
        controller = SessionController(simulation, service, refresh_listeners=[catalog.refresh])
        await run_classic(controller)

    if controller.error is not None:
        print(f"[warning] {controller.error}")

    page = await catalog.list(args.student)
    summary = [
        {"title": sim.title, "status": sim.state.status.value, "progress": sim.state.progress, "score": sim.state.score}
        for sim in page.simulations
    ]
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(main(args))
