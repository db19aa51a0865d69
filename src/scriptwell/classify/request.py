"""Request classifier: is the user reporting an error, asking for a change, or both?

Uses keyword rules for clear cases and one model call for ambiguous ones.
The rule result is always available as the fallback, so classification never
fails because of the model.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scriptwell.models.protocol import ModelProtocol

logger = logging.getLogger(__name__)


class RequestIntent(Enum):
    """What the user wants done."""

    ERROR_DEBUG = "ERROR_DEBUG"
    UPGRADE = "UPGRADE"
    BOTH = "BOTH"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class ErrorLocation:
    """A source position mentioned in an error message or stack trace."""

    file_path: str
    line: int
    column: int | None = None
    function: str | None = None


@dataclass(frozen=True, slots=True)
class RequestClassification:
    """Result of classifying one user message."""

    intent: RequestIntent
    confidence: float
    error_indicators: tuple[str, ...] = ()
    upgrade_indicators: tuple[str, ...] = ()
    reasoning: str | None = None
    locations: tuple[ErrorLocation, ...] = ()
    source: str = "rules"
    """"rules" or "model"."""

    def is_high_confidence(self, threshold: float = 0.8) -> bool:
        return self.confidence >= threshold

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "error_indicators": list(self.error_indicators),
            "upgrade_indicators": list(self.upgrade_indicators),
            "reasoning": self.reasoning,
            "locations": [
                {"file": loc.file_path, "line": loc.line, "column": loc.column, "function": loc.function}
                for loc in self.locations
            ],
            "source": self.source,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Rule Patterns
# ═══════════════════════════════════════════════════════════════════════════════

_ERROR_KEYWORDS: tuple[str, ...] = (
    "error", "exception", "failed", "failure", "crash", "bug",
    "doesn't work", "not working", "broken", "undefined",
    "null pointer", "cannot", "unable", "invalid", "missing",
    "compile error", "runtime error", "syntax error", "type error",
)

# Phrases that only show up in real failure output
_PROBLEM_PHRASES: tuple[str, ...] = (
    "is not a function", "is not defined", "traceback", "stack trace",
    "cannot read propert", "no such file", "segmentation fault",
    "exit code", "unexpected token",
)

_UPGRADE_KEYWORDS: tuple[str, ...] = (
    "upgrade", "enhance", "improve", "add feature", "new feature",
    "implement", "add", "create", "build", "develop",
    "update to", "upgrade to", "migrate", "refactor",
)


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    # Word-ish boundaries so "add" does not match "address"; "error" still
    # matches inside "TypeError"
    if keyword == "error":
        return re.compile(r"error")
    return re.compile(rf"(?<![a-z]){re.escape(keyword)}(?![a-z])")


_ERROR_PATTERNS = [(k, _keyword_pattern(k)) for k in _ERROR_KEYWORDS + _PROBLEM_PHRASES]
_UPGRADE_PATTERNS = [(k, _keyword_pattern(k)) for k in _UPGRADE_KEYWORDS]


# ═══════════════════════════════════════════════════════════════════════════════
# Error Locations
# ═══════════════════════════════════════════════════════════════════════════════

_EXT = r"(?:js|mjs|cjs|jsx|ts|tsx|py|java|kt|kts|go|rs|rb|php|c|cc|cpp|h|hpp|cs|swift|dart|scala|vue|svelte)"

_LOCATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    # JS stack frame: at fn (path/file.js:12:5)
    re.compile(rf"at\s+(?P<func>[\w$.<>\[\] ]+?)\s+\((?P<file>[^\s()]+?\.{_EXT}):(?P<line>\d+)(?::(?P<col>\d+))?\)"),
    # Python traceback: File "x.py", line 12, in fn
    re.compile(r'File\s+"(?P<file>[^"]+)",\s+line\s+(?P<line>\d+)(?:,\s+in\s+(?P<func>[\w<>.]+))?'),
    # Java/Kotlin frame: at com.x.Foo.bar(Foo.java:42)
    re.compile(r"at\s+(?P<func>[\w$.]+)\((?P<file>[\w$]+\.(?:java|kt)):(?P<line>\d+)\)"),
    # Generic: path/file.ext:line[:col]
    re.compile(rf"(?P<file>(?:[A-Za-z]:)?[\w./\\-]*\w\.{_EXT}):(?P<line>\d+)(?::(?P<col>\d+))?\b"),
)


def extract_error_locations(text: str) -> list[ErrorLocation]:
    """Source positions in error text, deduplicated by (path, line), in order found."""
    found: list[tuple[int, ErrorLocation]] = []
    seen: set[tuple[str, int]] = set()
    claimed: list[tuple[int, int]] = []

    for pattern in _LOCATION_PATTERNS:
        for m in pattern.finditer(text):
            span = m.span("file")
            if any(s <= span[0] < e for s, e in claimed):
                continue
            path = m.group("file").removeprefix("file://").replace("\\", "/")
            line = int(m.group("line"))
            key = (path, line)
            claimed.append(m.span())
            if key in seen:
                continue
            seen.add(key)
            groups = m.groupdict()
            col = groups.get("col")
            func = groups.get("func")
            found.append((
                m.start(),
                ErrorLocation(
                    file_path=path,
                    line=line,
                    column=int(col) if col else None,
                    function=func.strip() if func else None,
                ),
            ))

    found.sort(key=lambda item: item[0])
    return [loc for _, loc in found]


def api_mismatch_hint(text: str) -> str | None:
    """Known library API confusions worth pointing out to the model."""
    lower = text.lower()
    if "execute" in lower and "not a function" in lower:
        return (
            "The code calls .execute() on a database handle that does not provide it. "
            "This usually means a sqlite3/better-sqlite3 API mismatch: use the API of "
            "the library that is actually installed (e.g. db.prepare(...).run() or db.run())."
        )
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# Classifier
# ═══════════════════════════════════════════════════════════════════════════════

_ROUTES: dict[RequestIntent, str] = {
    RequestIntent.ERROR_DEBUG: "debug",
    RequestIntent.UPGRADE: "upgrade",
    RequestIntent.BOTH: "debug_then_upgrade",
    RequestIntent.UNKNOWN: "general",
}


def routing_info(classification: RequestClassification) -> dict[str, Any]:
    """Script name and flags the host uses to route a classified request."""
    intent = classification.intent
    return {
        "script": _ROUTES[intent],
        "debug": intent in (RequestIntent.ERROR_DEBUG, RequestIntent.BOTH),
        "upgrade": intent in (RequestIntent.UPGRADE, RequestIntent.BOTH),
        "needs_clarification": intent is RequestIntent.UNKNOWN,
    }


class RequestClassifier:
    """Classify a user message as ERROR_DEBUG, UPGRADE, BOTH or UNKNOWN.

    Example:
        >>> classifier = RequestClassifier()
        >>> result = await classifier.classify("TypeError: x is not a function at app.js:3")
        >>> result.intent
        <RequestIntent.ERROR_DEBUG: 'ERROR_DEBUG'>
    """

    def __init__(
        self,
        model: "ModelProtocol | None" = None,
        high_confidence: float = 0.8,
    ) -> None:
        self.model = model
        self.high_confidence = high_confidence

    async def classify(self, message: str) -> RequestClassification:
        logger.debug("Classifying: %r", message[:50])
        result = self.classify_with_rules(message)

        if result.confidence >= self.high_confidence:
            logger.debug("Rule classification: %s (%.2f)", result.intent.value, result.confidence)
            return result

        if self.model is not None:
            logger.debug(
                "Escalating to model (confidence %.2f < %.2f)",
                result.confidence,
                self.high_confidence,
            )
            return await self._classify_with_model(message, result)

        return result

    def classify_with_rules(self, message: str) -> RequestClassification:
        lower = message.lower()
        errors = tuple(k for k, p in _ERROR_PATTERNS if p.search(lower))
        upgrades = tuple(k for k, p in _UPGRADE_PATTERNS if p.search(lower))

        if errors and upgrades:
            intent, confidence = RequestIntent.BOTH, 0.85
        elif errors:
            intent, confidence = RequestIntent.ERROR_DEBUG, 0.8 if len(errors) >= 2 else 0.6
        elif upgrades:
            intent, confidence = RequestIntent.UPGRADE, 0.8 if len(upgrades) >= 2 else 0.6
        else:
            intent, confidence = RequestIntent.UNKNOWN, 0.3

        return RequestClassification(
            intent=intent,
            confidence=confidence,
            error_indicators=errors,
            upgrade_indicators=upgrades,
            reasoning="keyword rules",
            locations=tuple(extract_error_locations(message)),
            source="rules",
        )

    async def _classify_with_model(
        self,
        message: str,
        rule_result: RequestClassification,
    ) -> RequestClassification:
        from scriptwell.models.protocol import GenerateOptions, Message

        prompt = f"""Classify the user request below into exactly one category:

ERROR_DEBUG - the user wants an error or problem found and fixed
UPGRADE - the user wants features added, enhanced or refactored
BOTH - the user wants an error fixed and something upgraded
UNKNOWN - the intent cannot be determined

User request:
"{message}"

Reply with only a JSON object, no markdown:
{{"intent": "ERROR_DEBUG|UPGRADE|BOTH|UNKNOWN", "confidence": 0.0-1.0,
 "reasoning": "one sentence", "errorIndicators": [], "upgradeIndicators": []}}"""

        try:
            response = await self.model.generate(
                (Message(role="user", content=prompt),),
                tool_choice="none",
                options=GenerateOptions(temperature=0.3),
            )
            data = parse_json_reply(response.text)
            intent = RequestIntent(str(data.get("intent", "UNKNOWN")).upper())
            confidence = min(1.0, max(0.0, float(data.get("confidence", 0.5))))
        except Exception:
            logger.exception("Model classification failed, using rule result")
            return rule_result

        return RequestClassification(
            intent=intent,
            confidence=confidence,
            error_indicators=tuple(str(i) for i in data.get("errorIndicators") or ()),
            upgrade_indicators=tuple(str(i) for i in data.get("upgradeIndicators") or ()),
            reasoning=data.get("reasoning"),
            locations=rule_result.locations,
            source="model",
        )


def parse_json_reply(text: str) -> dict[str, Any]:
    """Extract the JSON object from a model reply, tolerating markdown fences.

    Raises:
        ValueError: If no JSON object can be parsed.
    """
    body = text.strip()
    body = re.sub(r"^```(?:json)?\s*", "", body)
    body = re.sub(r"\s*```$", "", body)
    start, end = body.find("{"), body.rfind("}")
    if start < 0 or end <= start:
        raise ValueError(f"no JSON object in reply: {text[:80]!r}")
    data = json.loads(body[start:end + 1])
    if not isinstance(data, dict):
        raise ValueError("reply JSON is not an object")
    return data
