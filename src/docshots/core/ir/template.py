"""``${name}`` variable binding for flow steps."""

from __future__ import annotations

import re
from dataclasses import replace
from string import Template
from typing import TYPE_CHECKING

from .model import Capture, Fill, Flow, ForEachMatch, LocateAndAct, Navigate, Press, WaitCondition, WaitFor

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .model import Step

_UNBOUND = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def slugify(value: str) -> str:
    """Lower-kebab-case: ``"Employee Positions"`` -> ``"employee-positions"``."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def substitute(text: str, variables: Mapping[str, str]) -> str:
    return Template(text).safe_substitute(variables)


def unbound_names(text: str) -> list[str]:
    return _UNBOUND.findall(text)


def _bind_condition(cond: WaitCondition, variables: Mapping[str, str]) -> WaitCondition:
    if cond.value is None:
        return cond
    return replace(cond, value=substitute(cond.value, variables))


def bind_step(step: Step, variables: Mapping[str, str]) -> Step:
    """Return a copy of ``step`` with every string field substituted.

    Children of a ``ForEachMatch`` are left alone; they are bound per match.
    """
    if isinstance(step, Navigate):
        return replace(
            step,
            url=substitute(step.url, variables),
            wait=_bind_condition(step.wait, variables),
            relaxed=_bind_condition(step.relaxed, variables) if step.relaxed else None,
        )
    if isinstance(step, LocateAndAct):
        action = step.action
        if isinstance(action, Fill):
            action = Fill(substitute(action.value, variables))
        elif isinstance(action, Press):
            action = Press(substitute(action.key, variables))
        return replace(
            step,
            candidates=tuple(substitute(c, variables) for c in step.candidates),
            action=action,
        )
    if isinstance(step, WaitFor):
        return replace(step, condition=_bind_condition(step.condition, variables))
    if isinstance(step, Capture):
        return replace(step, file_name=substitute(step.file_name, variables))
    if isinstance(step, ForEachMatch):
        return replace(step, selector=substitute(step.selector, variables))
    return step


def bind_flow(flow: Flow, variables: Mapping[str, str] | None = None) -> Flow:
    """Bind the flow's own defaults overlaid with ``variables``."""
    merged = {**flow.variables, **(variables or {})}
    return replace(flow, steps=tuple(bind_step(s, merged) for s in flow.steps), variables=merged)
