"""Flow IR definitions.

A Flow is an ordered, named sequence of Steps. Steps are immutable; template
variables (``${name}``) are bound just before execution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

LOAD_STATES = ("load", "domcontentloaded", "networkidle")
WAIT_KINDS = (*LOAD_STATES, "selector", "url", "delay")
ELEMENT_STATES = ("visible", "hidden", "attached", "detached")


@dataclass(frozen=True)
class WaitCondition:
    """Something the page must reach before a step is considered done.

    ``kind`` is a load state, ``selector`` (``value`` is the selector),
    ``url`` (``value`` is a glob or URL) or ``delay`` (``value`` is milliseconds).
    """

    kind: str = "load"
    value: str | None = None
    state: str = "visible"  # selector conditions only

    def __post_init__(self) -> None:
        if self.kind not in WAIT_KINDS:
            raise ValueError(f"Unknown wait condition kind: {self.kind}")
        if self.kind in ("selector", "url", "delay") and not self.value:
            raise ValueError(f"Wait condition '{self.kind}' requires a value")
        if self.state not in ELEMENT_STATES:
            raise ValueError(f"Unknown element state: {self.state}")

    @property
    def is_load_state(self) -> bool:
        return self.kind in LOAD_STATES

    def describe(self) -> str:
        if self.kind == "selector":
            return f"selector {self.value!r} {self.state}"
        if self.kind == "url":
            return f"url {self.value!r}"
        if self.kind == "delay":
            return f"delay {self.value}ms"
        return self.kind


# --- Actions ---


@dataclass(frozen=True)
class Click:
    pass


@dataclass(frozen=True)
class Fill:
    value: str


@dataclass(frozen=True)
class Press:
    """Press a keyboard key on the resolved element, e.g. "Enter"."""

    key: str


@dataclass(frozen=True)
class NoAction:
    """Only check that one of the candidates is present."""


Action = Union[Click, Fill, Press, NoAction]


# --- Steps ---


@dataclass(frozen=True)
class Navigate:
    url: str
    wait: WaitCondition = field(default_factory=lambda: WaitCondition("networkidle"))
    timeout_ms: int = 30000
    relaxed: WaitCondition | None = None  # retried once on timeout
    settle_ms: int = 0
    required: bool = True
    name: str | None = None

    kind = "navigate"


@dataclass(frozen=True)
class LocateAndAct:
    candidates: tuple[str, ...]
    action: Action = field(default_factory=Click)
    timeout_ms: int = 5000
    required: bool = True
    name: str | None = None

    kind = "locate"

    def __post_init__(self) -> None:
        if not self.candidates:
            raise ValueError("LocateAndAct requires at least one candidate selector")
        # Accept any iterable of selectors but keep the stored value hashable
        object.__setattr__(self, "candidates", tuple(self.candidates))


@dataclass(frozen=True)
class WaitFor:
    condition: WaitCondition
    timeout_ms: int = 5000
    required: bool = False
    name: str | None = None

    kind = "wait"


@dataclass(frozen=True)
class Capture:
    file_name: str
    full_page: bool = False
    required: bool = True
    name: str | None = None

    kind = "capture"


@dataclass(frozen=True)
class ForEachMatch:
    """Run ``steps`` once per non-empty text of the elements matching ``selector``.

    Child steps are templates: ``${text}``, ``${slug}`` and ``${index}`` are bound
    for every match.
    """

    selector: str
    steps: tuple[Step, ...]
    limit: int | None = None
    required: bool = True
    name: str | None = None

    kind = "for_each"

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))


Step = Union[Navigate, LocateAndAct, WaitFor, Capture, ForEachMatch]


@dataclass(frozen=True)
class Flow:
    name: str
    steps: tuple[Step, ...]
    output_subdir: str | None = None
    variables: dict[str, str] = field(default_factory=dict, hash=False)
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))


def step_label(step: Step) -> str:
    """Short human-readable description used in logs and summaries."""
    if step.name:
        return step.name
    if isinstance(step, Navigate):
        return f"navigate {step.url}"
    if isinstance(step, LocateAndAct):
        verb = type(step.action).__name__.lower()
        return f"{verb} {step.candidates[0]!r}" + (
            f" (+{len(step.candidates) - 1} fallbacks)" if len(step.candidates) > 1 else ""
        )
    if isinstance(step, WaitFor):
        return f"wait for {step.condition.describe()}"
    if isinstance(step, Capture):
        return f"capture {step.file_name}"
    if isinstance(step, ForEachMatch):
        return f"for each {step.selector!r}"
    return type(step).__name__
