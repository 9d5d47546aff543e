"""
Sandboxed Mini-Game Host.

Generated games run as untrusted code inside an iframe with
``sandbox="allow-scripts"`` (no same-origin access, no top navigation, no
forms, no popups). The only channel back to the host is ``postMessage``
carrying one of two messages:

    {"type": "SCORE_UPDATE", "score": <int>}
    {"type": "GAME_COMPLETED", "score": <int>, "message": <str>}

Games report through ``reportScore(score)`` and ``reportCompletion(score)``
(``completeGame`` is kept as an alias). Older generated games only signal
the end through ``alert("Congratulations...")``; that keyword shim is on by
default and can be disabled per document.

``GameHarness`` is the same contract executed in Python, used for headless
runs and tests. The rendered JavaScript harness is generated from the same
constants, so the two cannot drift apart.
"""

from __future__ import annotations

import html
import inspect
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaValidationError

from .logging_utils import log_error, log_info, log_success
from .schemas import GameCompleted, GameMessage, GamePayload, ScoreUpdate


SANDBOX_POLICY = "allow-scripts"
COMPLETION_KEYWORDS = ("complete", "finished", "congratulations", "win", "success")
DEFAULT_COMPLETION_MESSAGE = "Game completed successfully!"

_MESSAGE_ADAPTER: TypeAdapter = TypeAdapter(GameMessage)

MessageListener = Callable[[Union[ScoreUpdate, GameCompleted]], Union[None, Awaitable[None]]]


def is_completion_alert(message: Any) -> bool:
    """Legacy heuristic: an alert mentioning a completion keyword ends the game."""

    if not message:
        return False
    text = str(message).lower()
    return any(keyword in text for keyword in COMPLETION_KEYWORDS)


# ============================================================================
# Document rendering
# ============================================================================

_HARNESS_TEMPLATE = """
(function () {
  var completed = false;
  function toScore(value) {
    var n = Math.floor(Number(value));
    return isFinite(n) && n > 0 ? n : 0;
  }
  function post(message) {
    window.parent.postMessage(message, '*');
  }
  window.gameScore = window.gameScore || 0;
  window.reportScore = function (score) {
    window.gameScore = toScore(score);
    post({ type: 'SCORE_UPDATE', score: window.gameScore });
  };
  window.reportCompletion = function (score, message) {
    if (completed) return;
    completed = true;
    if (score !== undefined) window.gameScore = toScore(score);
    post({ type: 'GAME_COMPLETED', score: toScore(window.gameScore), message: message || %(default_message)s });
  };
  window.completeGame = function (finalScore) {
    window.reportCompletion(finalScore);
  };
%(legacy)s})();
"""

_LEGACY_ALERT_TEMPLATE = """  var completionKeywords = %(keywords)s;
  window.alert = function (message) {
    var text = String(message || '').toLowerCase();
    var done = completionKeywords.some(function (keyword) { return text.indexOf(keyword) !== -1; });
    if (done) window.reportCompletion(undefined, String(message));
    console.log('Game alert:', message);
  };
"""


def harness_script(*, legacy_alert_completion: bool = True) -> str:
    """JavaScript injected before the game code."""

    legacy = ""
    if legacy_alert_completion:
        legacy = _LEGACY_ALERT_TEMPLATE % {"keywords": json.dumps(list(COMPLETION_KEYWORDS))}
    return _HARNESS_TEMPLATE % {
        "default_message": json.dumps(DEFAULT_COMPLETION_MESSAGE),
        "legacy": legacy,
    }


def _inline_script(code: str) -> str:
    # A literal closing tag inside game code would end the script element early.
    return code.replace("</script", "<\\/script")


def render_game_document(payload: GamePayload, *, legacy_alert_completion: bool = True) -> str:
    """Full HTML document for the iframe ``srcdoc``.

    The harness runs in its own script element, so a game that throws during
    start-up cannot take the reporting functions down with it.
    """

    css = payload.css.replace("</style", "<\\/style")
    harness = _inline_script(harness_script(legacy_alert_completion=legacy_alert_completion))
    game = _inline_script(payload.javascript)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{html.escape(payload.title)}</title>
  <style>
    body {{ margin: 0; padding: 20px; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: #f7fafc; }}
    {css}
  </style>
</head>
<body>
{payload.html}
<script>{harness}</script>
<script>{game}</script>
</body>
</html>
"""


def iframe_attributes(payload: GamePayload, *, legacy_alert_completion: bool = True) -> Dict[str, str]:
    """Attributes for the embedding iframe element."""

    return {
        "sandbox": SANDBOX_POLICY,
        "title": payload.title,
        "srcdoc": render_game_document(payload, legacy_alert_completion=legacy_alert_completion),
    }


# ============================================================================
# Host-side harness and message host
# ============================================================================


class GameHarness:
    """Python rendition of the in-frame harness.

    Messages are appended to ``outbox`` and, when given, passed to ``post``.
    """

    def __init__(
        self,
        post: Optional[Callable[[Dict[str, Any]], None]] = None,
        *,
        legacy_alert_completion: bool = True,
    ) -> None:
        self.post = post
        self.legacy_alert_completion = legacy_alert_completion
        self.score = 0
        self.completed = False
        self.outbox: List[Dict[str, Any]] = []

    @staticmethod
    def _to_score(value: Any) -> int:
        try:
            score = int(float(value))
        except (TypeError, ValueError):
            return 0
        return max(score, 0)

    def _emit(self, message: Dict[str, Any]) -> None:
        self.outbox.append(message)
        if self.post is not None:
            self.post(message)

    def report_score(self, score: Any) -> None:
        self.score = self._to_score(score)
        self._emit({"type": "SCORE_UPDATE", "score": self.score})

    def report_completion(self, score: Any = None, message: Optional[str] = None) -> None:
        if self.completed:
            return
        self.completed = True
        if score is not None:
            self.score = self._to_score(score)
        self._emit(
            {
                "type": "GAME_COMPLETED",
                "score": self.score,
                "message": message or DEFAULT_COMPLETION_MESSAGE,
            }
        )

    def complete_game(self, final_score: Any = None) -> None:
        self.report_completion(final_score)

    def alert(self, message: Any) -> bool:
        """Return ``True`` when the alert was taken as a completion signal."""

        if not self.legacy_alert_completion or not is_completion_alert(message):
            return False
        already = self.completed
        self.report_completion(message=str(message))
        return not already


class GameHost:
    """Receives messages from the sandboxed game and tracks its outcome.

    Anything that is not a well-formed ``SCORE_UPDATE``/``GAME_COMPLETED``
    is ignored, as is every message after completion.
    """

    def __init__(self, listeners: Optional[List[MessageListener]] = None) -> None:
        self.listeners: List[MessageListener] = listeners or []
        self.score = 0
        self.completed = False
        self.completion_message: Optional[str] = None
        self.ignored = 0

    async def receive(self, data: Any) -> Optional[Union[ScoreUpdate, GameCompleted]]:
        try:
            message = _MESSAGE_ADAPTER.validate_python(data)
        except SchemaValidationError:
            self.ignored += 1
            log_error(f"Ignoring malformed game message: {str(data)[:80]}")
            return None

        if self.completed:
            self.ignored += 1
            log_info(f"Ignoring {message.type} received after completion")
            return None

        self.score = message.score
        if isinstance(message, GameCompleted):
            self.completed = True
            self.completion_message = message.message
            log_success(f"Game completed with score {message.score}")

        for listener in self.listeners:
            result = listener(message)
            if inspect.isawaitable(result):
                await result
        return message

    async def drain(self, harness: GameHarness) -> None:
        """Deliver every message queued by a host-side harness."""

        pending, harness.outbox = harness.outbox, []
        for data in pending:
            await self.receive(data)


__all__ = [
    "SANDBOX_POLICY",
    "COMPLETION_KEYWORDS",
    "DEFAULT_COMPLETION_MESSAGE",
    "is_completion_alert",
    "harness_script",
    "render_game_document",
    "iframe_attributes",
    "GameHarness",
    "GameHost",
]
