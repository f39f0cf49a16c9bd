from __future__ import annotations

from pathlib import PurePath
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core.ir.model import (
    Capture,
    Click,
    Fill,
    Flow,
    ForEachMatch,
    LocateAndAct,
    Navigate,
    NoAction,
    Press,
    WaitCondition,
    WaitFor,
)
from ..core.ir.template import unbound_names
from ..core.resolver.selectors import split_selector_list


LoadState = Literal["load", "domcontentloaded", "networkidle"]


class WaitSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["load", "domcontentloaded", "networkidle", "selector", "url", "delay"] = "load"
    value: str | None = Field(
        None, description="Selector, URL pattern or delay in milliseconds, depending on kind"
    )
    state: Literal["visible", "hidden", "attached", "detached"] = "visible"

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @model_validator(mode="after")
    def _check_delay(self) -> WaitSpec:
        # templated delays are checked again once bound
        if self.kind == "delay" and self.value is not None:
            value = self.value.strip()
            if not value.isdigit() and not unbound_names(value):
                raise ValueError(f"delay must be a whole number of milliseconds, got {self.value!r}")
        return self

    def to_condition(self) -> WaitCondition:
        return WaitCondition(kind=self.kind, value=self.value, state=self.state)


def _wait(spec: WaitSpec | LoadState) -> WaitCondition:
    # "networkidle" is shorthand for {"kind": "networkidle"}
    if isinstance(spec, str):
        return WaitCondition(kind=spec)
    return spec.to_condition()


class _StepSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = None


class NavigateSpec(_StepSpec):
    kind: Literal["navigate"]
    url: str
    wait: WaitSpec | LoadState = "networkidle"
    timeout_ms: int = Field(30000, gt=0)
    relaxed: WaitSpec | LoadState | None = Field(
        None, description="Condition for the single retry after a timeout"
    )
    settle_ms: int = Field(0, ge=0)
    required: bool = True

    def to_step(self) -> Navigate:
        return Navigate(
            url=self.url,
            wait=_wait(self.wait),
            timeout_ms=self.timeout_ms,
            relaxed=_wait(self.relaxed) if self.relaxed is not None else None,
            settle_ms=self.settle_ms,
            required=self.required,
            name=self.name,
        )


class LocateSpec(_StepSpec):
    kind: Literal["locate"]
    candidates: list[str] | str = Field(
        ..., description="Selectors in priority order; a string is split on top-level commas"
    )
    action: Literal["click", "fill", "press", "none"] = "click"
    value: str | None = Field(None, description="Text for fill, key for press")
    timeout_ms: int = Field(5000, ge=0)
    required: bool = True

    def to_step(self) -> LocateAndAct:
        candidates = (
            split_selector_list(self.candidates)
            if isinstance(self.candidates, str)
            else list(self.candidates)
        )
        if self.action == "fill":
            action = Fill(self.value or "")
        elif self.action == "press":
            action = Press(self.value or "Enter")
        elif self.action == "none":
            action = NoAction()
        else:
            action = Click()
        return LocateAndAct(
            candidates=tuple(candidates),
            action=action,
            timeout_ms=self.timeout_ms,
            required=self.required,
            name=self.name,
        )


class WaitForSpec(_StepSpec):
    kind: Literal["wait"]
    condition: WaitSpec | LoadState
    timeout_ms: int = Field(5000, ge=0)
    required: bool = False

    def to_step(self) -> WaitFor:
        return WaitFor(
            condition=_wait(self.condition),
            timeout_ms=self.timeout_ms,
            required=self.required,
            name=self.name,
        )


class CaptureSpec(_StepSpec):
    kind: Literal["capture"]
    file_name: str
    full_page: bool = False
    required: bool = True

    def to_step(self) -> Capture:
        return Capture(
            file_name=self.file_name,
            full_page=self.full_page,
            required=self.required,
            name=self.name,
        )


class ForEachSpec(_StepSpec):
    kind: Literal["for_each"]
    selector: str
    steps: list[StepSpec]
    limit: int | None = Field(None, gt=0)
    required: bool = True

    def to_step(self) -> ForEachMatch:
        return ForEachMatch(
            selector=self.selector,
            steps=tuple(s.to_step() for s in self.steps),
            limit=self.limit,
            required=self.required,
            name=self.name,
        )


StepSpec = Annotated[
    Union[NavigateSpec, LocateSpec, WaitForSpec, CaptureSpec, ForEachSpec],
    Field(discriminator="kind"),
]

ForEachSpec.model_rebuild()


class FlowSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    description: str = ""
    output_subdir: str | None = None
    variables: dict[str, str] = Field(
        default_factory=dict, description="Default template values, e.g. base_url"
    )
    steps: list[StepSpec] = Field(..., min_length=1)

    def to_flow(self) -> Flow:
        return Flow(
            name=self.name,
            steps=tuple(s.to_step() for s in self.steps),
            output_subdir=self.output_subdir,
            variables=dict(self.variables),
            description=self.description,
        )


class FlowDocument(BaseModel):
    flows: list[FlowSpec]


class RunRequest(BaseModel):
    flows: list[str] = Field(default_factory=list, description="Names of built-in flows")
    definitions: list[FlowSpec] | None = Field(
        None, description="Inline flow definitions run after the named ones"
    )
    variables: dict[str, str] = Field(default_factory=dict)
    output_dir: str | None = Field(
        None, description="Subdirectory of the server's configured output directory"
    )
    headless: bool | None = None

    @field_validator("output_dir")
    @classmethod
    def _relative_output_dir(cls, v: str | None) -> str | None:
        if v is None:
            return v
        parts = v.replace("\\", "/").split("/")
        if PurePath(v).is_absolute() or v.startswith(("/", "\\")) or ".." in parts:
            raise ValueError("output_dir must be a relative path inside the output directory")
        return v


class RunResponse(BaseModel):
    job_id: str
    status: str  # success|failed|cancelled
    results: list[dict[str, Any]]
