"""Per-run outcome records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StepStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class CandidateResolution:
    """Which candidate selector matched (if any). Diagnostics only."""

    selector: str | None
    count: int
    elapsed_ms: float
    attempted: tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.selector is not None and self.count > 0


@dataclass
class StepResult:
    index: int
    kind: str
    label: str
    status: StepStatus
    reason: str | None = None
    resolution: CandidateResolution | None = None
    path: str | None = None
    children: list[StepResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "index": self.index,
            "kind": self.kind,
            "label": self.label,
            "status": self.status.value,
            "reason": self.reason,
            "path": self.path,
        }
        if self.resolution is not None:
            data["resolution"] = {
                "selector": self.resolution.selector,
                "count": self.resolution.count,
                "elapsed_ms": round(self.resolution.elapsed_ms, 1),
                "attempted": list(self.resolution.attempted),
            }
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data


@dataclass
class RunResult:
    flow_name: str
    status: RunStatus = RunStatus.SUCCESS
    steps: list[StepResult] = field(default_factory=list)
    captures: list[str] = field(default_factory=list)
    failed_step: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "flow": self.flow_name,
            "status": self.status.value,
            "failed_step": self.failed_step,
            "error": self.error,
            "captures": list(self.captures),
            "steps": [s.to_dict() for s in self.steps],
        }

    def summary(self) -> str:
        """Render a short report: steps attempted, captured files, first failure."""
        attempted = sum(1 for s in self.steps if s.status is not StepStatus.SKIPPED)
        lines = [
            f"Flow '{self.flow_name}': {self.status.value.upper()} "
            f"({attempted}/{len(self.steps)} steps attempted, {len(self.captures)} captured)"
        ]
        for s in self.steps:
            lines.extend(_summary_lines(s, indent="  "))
        if self.error:
            lines.append(f"  first failure at step {self.failed_step}: {self.error}")
        return "\n".join(lines)


def _summary_lines(result: StepResult, indent: str) -> list[str]:
    line = f"{indent}[{result.index}] {result.status.value:<7} {result.label}"
    if result.path:
        line += f" -> {result.path}"
    elif result.reason:
        line += f" ({result.reason})"
    lines = [line]
    for child in result.children:
        lines.extend(_summary_lines(child, indent + "    "))
    return lines
