"""Instruction interpretation: free-text step -> typed browser action.

Instructions come from a language model, so they are not a grammar. The
keyword interpreter walks an ordered rule table and the first rule whose
keyword appears in the instruction (case-insensitively) decides the action:

    1. navigate   "navigate", "go to", "visit"
    2. click      "click"
    3. fill       "type", "fill", "enter"
    4. scroll     "scroll"
    5. wait       "wait", "verify"
    6. screenshot "screenshot", "capture"

Anything else is ``Unknown``. Rule order is a tie-break only: "navigate to
https://a.com and click Login" is a navigation, "type 'x' then click Go" is
a click.
"""

import re
from dataclasses import dataclass
from typing import Callable, ClassVar, Protocol, Union

from runthru.models.recording import MAX_INSTRUCTION_LENGTH, ActionKind

DEFAULT_SCROLL_PX = 500
DEFAULT_WAIT_MS = 2_000
MAX_WAIT_MS = 30_000


@dataclass(frozen=True)
class Navigate:
    url: str
    kind: ClassVar[ActionKind] = ActionKind.NAVIGATE


@dataclass(frozen=True)
class Click:
    target: str
    kind: ClassVar[ActionKind] = ActionKind.CLICK


@dataclass(frozen=True)
class Fill:
    target: str
    value: str
    kind: ClassVar[ActionKind] = ActionKind.FILL


@dataclass(frozen=True)
class Scroll:
    distance: int = DEFAULT_SCROLL_PX
    kind: ClassVar[ActionKind] = ActionKind.SCROLL


@dataclass(frozen=True)
class Wait:
    duration_ms: int = DEFAULT_WAIT_MS
    kind: ClassVar[ActionKind] = ActionKind.WAIT


@dataclass(frozen=True)
class Screenshot:
    kind: ClassVar[ActionKind] = ActionKind.SCREENSHOT


@dataclass(frozen=True)
class Unknown:
    reason: str = "no rule matched"
    kind: ClassVar[ActionKind] = ActionKind.UNKNOWN


Action = Union[Navigate, Click, Fill, Scroll, Wait, Screenshot, Unknown]


class Interpreter(Protocol):
    """Strategy that turns one instruction into one action. Must not raise."""

    def interpret(self, instruction: str) -> Action: ...


_URL_RE = re.compile(r"https?://[^\s'\"<>]+", re.IGNORECASE)
# Quotes inside a word ("Bob's") do not open or close a quoted target
_QUOTED_RE = re.compile(r"(?<!\w)(['\"])(.+?)\1(?!\w)")
_INT_RE = re.compile(r"-?\d+")
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|milliseconds?|s|sec|secs|seconds?)?\b", re.IGNORECASE)

# A quoted string ends at the first matching quote
_VALUE = r"'[^']*'|\"[^\"]*\""
_TARGET = r"'[^']+'|\"[^\"]+\""

# type 'hello' in '#search'
_TYPE_INTO_RE = re.compile(
    rf"\b(?:type|fill|enter)\s+(?P<value>{_VALUE})\s+(?:in|into)\s+(?:the\s+)?(?P<target>{_TARGET})",
    re.IGNORECASE,
)
# fill in 'email' field with 'a@b.c'
_FILL_WITH_RE = re.compile(
    rf"\b(?:fill|enter|type)\s+(?:in\s+)?(?:the\s+)?(?P<target>{_TARGET})[^'\"]*?\bwith\s+(?P<value>{_VALUE})",
    re.IGNORECASE,
)


def _navigate(instruction: str) -> Action:
    match = _URL_RE.search(instruction)
    if not match:
        return Unknown("navigation instruction without a URL")
    return Navigate(url=match.group(0).rstrip(".,;:!?)]}"))


def _click(instruction: str) -> Action:
    quoted = _QUOTED_RE.search(instruction)
    if quoted:
        target = quoted.group(2).strip()
    else:
        index = instruction.lower().find("click")
        target = instruction[index + len("click"):].strip()
    if not target:
        return Unknown("click instruction without a target")
    return Click(target=target)


def _fill(instruction: str) -> Action:
    match = _TYPE_INTO_RE.search(instruction) or _FILL_WITH_RE.search(instruction)
    if not match:
        return Unknown("fill instruction does not match \"type '<text>' in '<target>'\"")
    return Fill(target=match.group("target")[1:-1].strip(), value=match.group("value")[1:-1])


def _scroll(instruction: str) -> Action:
    match = _INT_RE.search(instruction)
    distance = abs(int(match.group(0))) if match else DEFAULT_SCROLL_PX
    if re.search(r"\bup\b", instruction, re.IGNORECASE):
        distance = -distance
    return Scroll(distance=distance)


def _wait(instruction: str) -> Action:
    match = _DURATION_RE.search(instruction)
    if not match:
        return Wait()
    amount = float(match.group(1))
    unit = (match.group(2) or "s").lower()
    duration_ms = amount if unit.startswith("m") else amount * 1000
    return Wait(duration_ms=int(min(duration_ms, MAX_WAIT_MS)))


def _screenshot(instruction: str) -> Action:
    return Screenshot()


RULES: tuple[tuple[tuple[str, ...], Callable[[str], Action]], ...] = (
    (("navigate", "go to", "visit"), _navigate),
    (("click",), _click),
    (("type", "fill", "enter"), _fill),
    (("scroll",), _scroll),
    (("wait", "verify"), _wait),
    (("screenshot", "capture"), _screenshot),
)


class KeywordInterpreter:
    """First-match-wins keyword interpreter."""

    def __init__(self, rules=RULES):
        self.rules = rules

    def interpret(self, instruction: str) -> Action:
        if not isinstance(instruction, str) or not instruction.strip():
            return Unknown("empty instruction")
        # Requests reject longer steps; anything past the limit is ignored here
        instruction = instruction[:MAX_INSTRUCTION_LENGTH]
        lowered = instruction.lower()
        for keywords, build in self.rules:
            if any(keyword in lowered for keyword in keywords):
                try:
                    return build(instruction)
                except (ValueError, OverflowError) as e:
                    return Unknown(f"could not parse instruction: {e}")
        return Unknown()


_default = KeywordInterpreter()


def interpret(instruction: str) -> Action:
    """Interpret one instruction with the default keyword rules."""
    return _default.interpret(instruction)
