"""Deterministic content used whenever the AI Content Service is unavailable.

Every function here is pure: same input, same output. The content service
returns these when no provider is configured, when a call fails, or when
the model's output does not validate.
"""

from __future__ import annotations

from typing import List, Optional

from .schemas import (
    ActionResult,
    GamePayload,
    GameSetup,
    Hint,
    LabChemical,
    LabEquipment,
    MixingResult,
    ScoringCriteria,
    SolutionInfo,
)


# ============================================================================
# Game setup
# ============================================================================

BASE_EQUIPMENT = (
    LabEquipment(id="beaker_100ml", name="100ml Beaker", description="For holding small volumes of liquids", icon="🥃", category="glassware"),
    LabEquipment(id="beaker_250ml", name="250ml Beaker", description="For holding larger volumes of liquids", icon="🍺", category="glassware"),
    LabEquipment(id="pipette", name="Pipette", description="For measuring and transferring small volumes", icon="💉", category="tools"),
    LabEquipment(id="thermometer", name="Digital Thermometer", description="For measuring temperature accurately", icon="🌡️", category="tools"),
    LabEquipment(id="stirrer", name="Glass Stirring Rod", description="For mixing solutions safely", icon="🥄", category="tools"),
    LabEquipment(id="dropper", name="Eye Dropper", description="For adding liquids drop by drop", icon="💧", category="tools"),
    LabEquipment(id="measuring_cylinder", name="Measuring Cylinder", description="For precise volume measurements", icon="📏", category="glassware"),
    LabEquipment(id="safety_goggles", name="Safety Goggles", description="Essential eye protection", icon="🥽", category="safety"),
)

BASE_CHEMICALS = (
    LabChemical(id="water", name="Distilled Water", concentration="Pure H₂O", hazard="safe", color="clear", icon="💧"),
    LabChemical(id="indicator", name="Universal pH Indicator", concentration="0.1%", hazard="safe", color="purple", icon="🟣"),
    LabChemical(id="salt_solution", name="Sodium Chloride Solution", concentration="1M", hazard="safe", color="clear", icon="🧂"),
)

CHEMISTRY_EQUIPMENT = (
    LabEquipment(id="burette", name="Burette", description="For precise volume delivery in titrations", icon="🧪", category="glassware"),
    LabEquipment(id="conical_flask", name="Conical Flask", description="For mixing and reactions", icon="⚗️", category="glassware"),
    LabEquipment(id="burette_stand", name="Burette Stand", description="To hold the burette securely", icon="🔧", category="tools"),
    LabEquipment(id="white_tile", name="White Tile", description="To observe color changes clearly", icon="⬜", category="tools"),
)

CHEMISTRY_CHEMICALS = (
    LabChemical(id="hcl_solution", name="Hydrochloric Acid", concentration="Unknown", hazard="caution", color="clear", icon="🔴"),
    LabChemical(id="naoh_solution", name="Sodium Hydroxide", concentration="0.1M", hazard="caution", color="clear", icon="🔵"),
    LabChemical(id="phenolphthalein", name="Phenolphthalein", concentration="0.5%", hazard="safe", color="clear", icon="🌸"),
)

BIOLOGY_EQUIPMENT = (
    LabEquipment(id="microscope", name="Light Microscope", description="For observing small specimens", icon="🔬", category="tools"),
    LabEquipment(id="slide", name="Glass Slide", description="For mounting specimens", icon="📱", category="glassware"),
    LabEquipment(id="cover_slip", name="Cover Slip", description="To cover specimens on slides", icon="📄", category="glassware"),
)

BIOLOGY_CHEMICALS = (
    LabChemical(id="iodine", name="Iodine Solution", concentration="1%", hazard="caution", color="brown", icon="🟤"),
    LabChemical(id="methylene_blue", name="Methylene Blue", concentration="0.5%", hazard="safe", color="blue", icon="🔵"),
)


def _mentions(text: Optional[str], *keywords: str) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in keywords)


def fallback_game_setup(subject: Optional[str], title: str = "Science Experiment") -> GameSetup:
    """Base kit plus subject-specific additions (chemistry, biology)."""

    equipment: List[LabEquipment] = list(BASE_EQUIPMENT)
    chemicals: List[LabChemical] = list(BASE_CHEMICALS)

    if _mentions(subject, "chemistry", "titration", "acid"):
        equipment.extend(CHEMISTRY_EQUIPMENT)
        chemicals.extend(CHEMISTRY_CHEMICALS)
    if _mentions(subject, "biology", "microscope"):
        equipment.extend(BIOLOGY_EQUIPMENT)
        chemicals.extend(BIOLOGY_CHEMICALS)

    return GameSetup(
        available_equipment=[item.model_copy() for item in equipment],
        available_chemicals=[item.model_copy() for item in chemicals],
        game_objectives=[
            f"Complete the {title} experiment safely and accurately",
            "Set up laboratory equipment in the correct order",
            "Follow proper safety procedures throughout",
            "Make detailed scientific observations",
            "Achieve accurate experimental results",
        ],
        scoring_criteria=ScoringCriteria(correct_action=10, observation=5, completion=50, safety=15),
    )


def fallback_instructions(title: str) -> str:
    return (
        f"🎮 Welcome to your interactive {title} lab! Drag equipment from the left panel "
        "to the workspace zones, mix chemicals safely, and follow the experimental steps. "
        "Score points by making correct observations and completing each step successfully! 🧪✨"
    )


# ============================================================================
# Actions, mixing and hints
# ============================================================================

_ACTION_RESULTS = {
    "use_equipment": {
        "beaker": "The beaker is now ready to hold liquids safely",
        "burette": "The burette is set up for precise volume measurements",
        "thermometer": "Temperature monitoring is now active",
        "default": "Equipment positioned correctly for the experiment",
    },
    "measure": {"default": "Accurate measurement taken and recorded"},
    "observe": {"default": "Important observation made and documented"},
}


def fallback_action_result(
    action: Optional[str],
    equipment: Optional[LabEquipment],
    target: str,
    title: Optional[str] = None,
) -> ActionResult:
    action = action or "use_equipment"
    if equipment is not None and equipment.id:
        equipment_type = equipment.id.split("_")[0]
    elif equipment is not None:
        equipment_type = equipment.name.lower()
    else:
        equipment_type = "default"

    table = _ACTION_RESULTS.get(action, {})
    result = (
        table.get(equipment_type)
        or table.get("default")
        or _ACTION_RESULTS["use_equipment"]["default"]
    )
    name = equipment.name if equipment is not None else "equipment"
    verb = "Placed" if action == "use_equipment" else "Used"
    return ActionResult(
        action_description=f"{verb} {name} in the {target} area",
        result=result,
        explanation=(
            f"This action helps you progress through the {title or 'experiment'} "
            "by ensuring proper setup and measurement."
        ),
        score_gain=10,
        hints=["Excellent work! You're following good laboratory practice."],
        visual_effect=f"{name if equipment is not None else 'Equipment'} is now visible in the {target} workspace",
        experiment_complete=False,
        next_suggestion=(
            "Record what you observe" if target == "observation"
            else "Continue with the next experimental step"
        ),
    )


def _mixing_kind(first: Optional[LabChemical], second: Optional[LabChemical]) -> str:
    first_name = first.name.lower() if first is not None else ""
    second_name = second.name.lower() if second is not None else ""
    if "acid" in first_name and "base" in second_name:
        return "acid_base"
    if "indicator" in first_name or "indicator" in second_name:
        return "indicator"
    return "default"


def fallback_mixing_result(
    first: Optional[LabChemical],
    second: Optional[LabChemical],
) -> MixingResult:
    kind = _mixing_kind(first, second)
    if kind == "acid_base":
        visual = "The solution bubbles slightly and may change color"
        outcome = "Neutralization reaction occurs between acid and base"
        explanation = "When acids and bases react, they neutralize each other, often producing water and a salt."
        solution = SolutionInfo(
            name="Neutralized Solution",
            color="light pink",
            properties="More neutral pH, may form salt and water",
        )
    elif kind == "indicator":
        visual = "Color change indicates pH level"
        outcome = "pH indicator reveals the solution's acidity or alkalinity"
        explanation = "Indicators help us determine the pH of solutions by changing color."
        solution = SolutionInfo(
            name="pH Test Solution", color="varies by pH", properties="Shows pH through color change"
        )
    else:
        visual = "The chemicals mix thoroughly creating a uniform solution"
        outcome = "The two substances combine to form a new mixture"
        explanation = "When chemicals are mixed, they can react to form new substances with different properties."
        solution = SolutionInfo(
            name="Mixed Solution", color="light blue", properties="Shows pH through color change"
        )

    first_name = first.name if first is not None else "Chemical A"
    second_name = second.name if second is not None else "Chemical B"
    return MixingResult(
        result=f"{first_name} mixed with {second_name}: {outcome}",
        explanation=explanation,
        visual_effect=visual,
        result_solution=solution,
        score_gain=15,
        safety="Always wear safety goggles and handle chemicals with care",
        next_steps=[
            "Observe and record the color change",
            "Note any other physical changes",
            "Record the temperature if it changed",
            "Continue with the next step of your experiment",
        ],
    )


def fallback_hint(actions_taken: int, observations_made: int, title: Optional[str] = None) -> Hint:
    """Pick a hint from what the student has done so far."""

    if actions_taken == 0:
        return Hint(
            text="Try dragging equipment to different workspace zones to see how they interact with each other! 🔬",
            type="tip",
            specificity="specific",
        )
    if observations_made < actions_taken:
        return Hint(
            text="Don't forget to record your observations - they're important for understanding what's happening! 📝",
            type="direction",
            specificity="specific",
        )
    return Hint(
        text=(
            f"Great progress on your {title or 'experiment'}! Try exploring different "
            "equipment combinations to see what happens next. 🧪✨"
        ),
        type="encouragement",
        specificity="general",
    )


# ============================================================================
# Mini-games
# ============================================================================
#
# Games report through the harness functions injected by labsim.sandbox:
# reportScore(score) while playing and reportCompletion(score) once.

_SHARED_CSS = """
.game-container { font-family: Arial, sans-serif; max-width: 760px; margin: 0 auto; padding: 16px; }
.game-header { display: flex; justify-content: space-between; align-items: center; }
.card { display: inline-block; margin: 6px; padding: 12px 16px; border-radius: 10px; background: #eef2ff; cursor: pointer; }
.card.selected { background: #c7d2fe; }
.card.matched { background: #bbf7d0; cursor: default; }
#feedback { min-height: 24px; margin-top: 12px; font-weight: bold; }
#completion { display: none; margin-top: 16px; padding: 16px; background: #ecfdf5; border-radius: 10px; }
"""


def chemistry_game() -> GamePayload:
    html = """
<div class="game-container">
  <div class="game-header"><h2>🧪 Element Matching Challenge</h2><div>Score: <span id="score">0</span></div></div>
  <p>Click an element name, then click its chemical symbol.</p>
  <div id="elements">
    <div class="card element" data-key="hydrogen">Hydrogen</div>
    <div class="card element" data-key="oxygen">Oxygen</div>
    <div class="card element" data-key="carbon">Carbon</div>
    <div class="card element" data-key="nitrogen">Nitrogen</div>
    <div class="card element" data-key="helium">Helium</div>
    <div class="card element" data-key="sodium">Sodium</div>
  </div>
  <div id="symbols">
    <div class="card symbol" data-key="sodium">Na</div>
    <div class="card symbol" data-key="carbon">C</div>
    <div class="card symbol" data-key="helium">He</div>
    <div class="card symbol" data-key="hydrogen">H</div>
    <div class="card symbol" data-key="nitrogen">N</div>
    <div class="card symbol" data-key="oxygen">O</div>
  </div>
  <div id="feedback"></div>
  <div id="completion">🎉 All matched! Final score: <span id="final-score">0</span></div>
</div>
"""
    javascript = """
let score = 0;
let matched = 0;
let pickedElement = null;
let pickedSymbol = null;

function pick(card, isElement) {
  if (card.classList.contains('matched')) return;
  document.querySelectorAll(isElement ? '.element' : '.symbol').forEach(c => c.classList.remove('selected'));
  card.classList.add('selected');
  if (isElement) { pickedElement = card; } else { pickedSymbol = card; }
  checkMatch();
}

function checkMatch() {
  if (!pickedElement || !pickedSymbol) return;
  const feedback = document.getElementById('feedback');
  if (pickedElement.dataset.key === pickedSymbol.dataset.key) {
    pickedElement.className = 'card element matched';
    pickedSymbol.className = 'card symbol matched';
    score += 100;
    matched++;
    feedback.textContent = '✅ Correct! +100 points';
    reportScore(score);
  } else {
    pickedElement.classList.remove('selected');
    pickedSymbol.classList.remove('selected');
    feedback.textContent = '❌ Try again!';
  }
  pickedElement = null;
  pickedSymbol = null;
  document.getElementById('score').textContent = score;
  if (matched === 6) {
    document.getElementById('final-score').textContent = score;
    document.getElementById('completion').style.display = 'block';
    reportCompletion(score);
  }
}

document.querySelectorAll('.element').forEach(c => c.addEventListener('click', () => pick(c, true)));
document.querySelectorAll('.symbol').forEach(c => c.addEventListener('click', () => pick(c, false)));
"""
    return GamePayload(
        title="Element Matching Challenge",
        description="Match chemical elements with their symbols",
        estimated_time="8-10 minutes",
        learning_objectives=[
            "Learn chemical element symbols",
            "Understand periodic table organization",
            "Identify element properties",
        ],
        html=html,
        css=_SHARED_CSS,
        javascript=javascript,
        instructions=(
            "Click on an element name, then click on its matching chemical symbol. "
            "Score points for every correct match!"
        ),
        educational_note=(
            "This game helps students learn chemical element symbols and their names, "
            "which is fundamental to understanding chemistry and the periodic table."
        ),
    )


def _target_game(
    *,
    title: str,
    description: str,
    objectives: List[str],
    heading: str,
    prompt_label: str,
    targets: List[tuple],
    instructions: str,
    educational_note: str,
) -> GamePayload:
    """Click-the-named-target game shared by the biology, space and general fallbacks.

    ``targets`` holds ``(key, label, fact)`` tuples.
    """

    cards = "\n".join(
        f'    <div class="card target" data-key="{key}" data-fact="{fact}">{label}</div>'
        for key, label, fact in targets
    )
    order = ", ".join(f"'{key}'" for key, _, _ in targets)
    html = f"""
<div class="game-container">
  <div class="game-header"><h2>{heading}</h2><div>Score: <span id="score">0</span></div></div>
  <p>{prompt_label}: <strong id="current-target"></strong></p>
  <div id="targets">
{cards}
  </div>
  <div id="feedback"></div>
  <div id="completion">🎉 Well done! Final score: <span id="final-score">0</span></div>
</div>
"""
    javascript = """
const order = [%s];
let index = 0;
let score = 0;

function showTarget() {
  const label = document.querySelector('.target[data-key="' + order[index] + '"]').textContent;
  document.getElementById('current-target').textContent = label;
}

function handleClick(card) {
  if (index >= order.length || card.classList.contains('matched')) return;
  const feedback = document.getElementById('feedback');
  if (card.dataset.key === order[index]) {
    card.classList.add('matched');
    score += 50;
    feedback.textContent = '✅ ' + card.dataset.fact;
    reportScore(score);
    index++;
    if (index === order.length) {
      document.getElementById('final-score').textContent = score;
      document.getElementById('completion').style.display = 'block';
      reportCompletion(score);
      return;
    }
    showTarget();
  } else {
    feedback.textContent = '❌ Not quite, try another one!';
  }
  document.getElementById('score').textContent = score;
}

document.querySelectorAll('.target').forEach(c => c.addEventListener('click', () => handleClick(c)));
showTarget();
""" % order
    return GamePayload(
        title=title,
        description=description,
        estimated_time="5-8 minutes",
        learning_objectives=objectives,
        html=html,
        css=_SHARED_CSS,
        javascript=javascript,
        instructions=instructions,
        educational_note=educational_note,
    )


def biology_game() -> GamePayload:
    return _target_game(
        title="Cell Parts Explorer",
        description="Identify the parts of a cell and learn what each one does",
        objectives=["Identify cell organelles", "Understand organelle functions"],
        heading="🔬 Cell Parts Explorer",
        prompt_label="Find the",
        targets=[
            ("nucleus", "Nucleus", "The nucleus holds the cell's DNA."),
            ("mitochondria", "Mitochondria", "Mitochondria release energy for the cell."),
            ("membrane", "Cell Membrane", "The membrane controls what enters and leaves."),
            ("ribosome", "Ribosome", "Ribosomes build proteins."),
            ("cytoplasm", "Cytoplasm", "Cytoplasm is the jelly where reactions happen."),
        ],
        instructions=(
            "Click on the organelle named above. Learn about each cell part's "
            "function as you identify them correctly!"
        ),
        educational_note="This game teaches the structure of cells and the role of each organelle.",
    )


def physics_game() -> GamePayload:
    html = """
<div class="game-container">
  <div class="game-header"><h2>🚀 Force and Motion Lab</h2><div>Score: <span id="score">0</span></div></div>
  <p>Push the cart so it stops inside the green zone (60-80 m). Choose a force and press Push.</p>
  <input id="force" type="range" min="10" max="100" value="50">
  <span id="force-value">50</span> N
  <button id="push">Push</button>
  <div>Distance: <span id="distance">0</span> m &middot; Tries left: <span id="tries">5</span></div>
  <div id="feedback"></div>
  <div id="completion">🎉 Experiment finished! Final score: <span id="final-score">0</span></div>
</div>
"""
    javascript = """
let score = 0;
let tries = 5;
const mass = 2;
const friction = 0.9;

document.getElementById('force').addEventListener('input', e => {
  document.getElementById('force-value').textContent = e.target.value;
});

document.getElementById('push').addEventListener('click', () => {
  if (tries <= 0) return;
  const force = Number(document.getElementById('force').value);
  const acceleration = force / mass;
  const distance = Math.round((acceleration * acceleration) / (2 * friction * 9.8) * 10) / 10;
  document.getElementById('distance').textContent = distance;
  const feedback = document.getElementById('feedback');
  if (distance >= 60 && distance <= 80) {
    score += 100;
    feedback.textContent = '✅ Perfect stop! F = m × a in action.';
  } else {
    feedback.textContent = distance < 60 ? '⬆️ Too short, use more force.' : '⬇️ Too far, use less force.';
  }
  tries--;
  document.getElementById('tries').textContent = tries;
  document.getElementById('score').textContent = score;
  reportScore(score);
  if (tries === 0) {
    document.getElementById('final-score').textContent = score;
    document.getElementById('completion').style.display = 'block';
    reportCompletion(score);
  }
});
"""
    return GamePayload(
        title="Force and Motion Lab",
        description="Apply forces to a cart and predict how far it travels",
        estimated_time="5-8 minutes",
        learning_objectives=[
            "Apply Newton's second law",
            "Relate force, mass and acceleration",
            "Make predictions and test them",
        ],
        html=html,
        css=_SHARED_CSS,
        javascript=javascript,
        instructions="Pick a force and push the cart. Land it in the green zone to score points!",
        educational_note="This game shows how force and mass determine acceleration and distance.",
    )


def space_game() -> GamePayload:
    return _target_game(
        title="Space Explorer Adventure",
        description="Learn about planets by visiting them in order from the Sun",
        objectives=["Learn planetary facts", "Understand the order of the planets"],
        heading="🪐 Space Explorer Adventure",
        prompt_label="Fly to",
        targets=[
            ("mercury", "Mercury", "Mercury is the closest planet to the Sun."),
            ("venus", "Venus", "Venus is the hottest planet."),
            ("earth", "Earth", "Earth is the only planet known to have life."),
            ("mars", "Mars", "Mars is called the Red Planet."),
            ("jupiter", "Jupiter", "Jupiter is the largest planet."),
            ("saturn", "Saturn", "Saturn has the most famous rings."),
        ],
        instructions="Click the planets in the order shown to explore them and collect data.",
        educational_note="This game teaches astronomy and scientific observation.",
    )


def general_science_game(subject: str = "Science") -> GamePayload:
    return _target_game(
        title=f"{subject} Discovery Lab",
        description="Follow the scientific method step by step",
        objectives=["Practice the scientific method", "Understand how experiments are built"],
        heading="🔍 Scientific Method Challenge",
        prompt_label="Next step",
        targets=[
            ("question", "Ask a Question", "Every experiment starts with a question."),
            ("hypothesis", "Form a Hypothesis", "A hypothesis is a testable prediction."),
            ("experiment", "Run the Experiment", "Change one variable at a time."),
            ("data", "Record Data", "Careful records make results trustworthy."),
            ("conclusion", "Draw a Conclusion", "Compare the results with the hypothesis."),
        ],
        instructions="Click the steps of the scientific method in the right order.",
        educational_note="This game teaches how scientists plan and carry out experiments.",
    )


def fallback_game(prompt: str, level: int = 1, subject: str = "Science") -> GamePayload:
    """Choose a built-in game from keywords in the prompt and subject."""

    subject = subject or "Science"
    if _mentions(prompt, "space", "planet", "astronaut", "solar"):
        return space_game()
    if _mentions(subject, "chemistry") or _mentions(prompt, "chemistry", "chemical", "element"):
        return chemistry_game()
    if _mentions(subject, "biology") or _mentions(prompt, "biology", "cell", "organism"):
        return biology_game()
    if _mentions(subject, "physics") or _mentions(prompt, "physics", "force", "motion"):
        return physics_game()
    return general_science_game(subject.title())


__all__ = [
    "fallback_game_setup",
    "fallback_instructions",
    "fallback_action_result",
    "fallback_mixing_result",
    "fallback_hint",
    "fallback_game",
    "chemistry_game",
    "biology_game",
    "physics_game",
    "space_game",
    "general_science_game",
]
