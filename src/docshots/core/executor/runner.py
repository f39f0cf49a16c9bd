"""Flow executor.

Runs the steps of one Flow strictly in order against a Session's page. A
required step that fails stops the flow; everything after it is recorded as
skipped. Optional failures are logged and recorded without changing the
overall status.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urljoin, urlparse

from playwright.sync_api import Error as PWError
from playwright.sync_api import TimeoutError as PWTimeoutError

from ...adapters.playwright import Session
from ...api.dto import RunRequest, RunResponse
from ...config.settings import settings as default_settings
from ...runtime.storage import capture_path
from ..errors import (
    ActionFailed,
    ElementNotFound,
    FlowCancelled,
    FlowDefinitionError,
    FlowError,
    NavigationFailed,
    NavigationTimeout,
    ScreenshotWriteFailed,
    WaitTimeout,
)
from ..ir.model import (
    Capture,
    Click,
    Fill,
    ForEachMatch,
    LocateAndAct,
    Navigate,
    NoAction,
    Press,
    WaitFor,
    step_label,
)
from ..ir.template import bind_flow, bind_step, slugify, unbound_names
from ..resolver.selectors import DEFAULT_POLL_MS, dedupe_candidates, resolve_candidates
from .result import RunResult, RunStatus, StepResult, StepStatus

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from playwright.sync_api import Page

    from ...config.settings import Settings
    from ..ir.model import Flow, Step, WaitCondition

logger = logging.getLogger(__name__)

# Playwright treats timeout=0 as "no timeout"; zero-timeout steps still bound their browser calls
DEFAULT_ACTION_TIMEOUT_MS = 5000


@dataclass
class _RunContext:
    flow_name: str
    page: Page
    output_dir: Path
    subdir: str | None
    result: RunResult
    cancel_event: threading.Event | None
    poll_ms: int

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


# --- Waiting ---


def _delay_ms(cond: WaitCondition) -> int:
    value = (cond.value or "").strip()
    if value.isdigit():
        return int(value)
    missing = unbound_names(value)
    if missing:
        raise WaitTimeout(f"Unbound variables in delay: {', '.join(missing)}")
    raise WaitTimeout(f"Delay must be a whole number of milliseconds, got {cond.value!r}")


def _await_condition(page: Page, cond: WaitCondition, timeout_ms: int) -> None:
    if cond.is_load_state:
        page.wait_for_load_state(cond.kind, timeout=timeout_ms)  # type: ignore[arg-type]
    elif cond.kind == "selector":
        page.wait_for_selector(cond.value, state=cond.state, timeout=timeout_ms)  # type: ignore[arg-type]
    elif cond.kind == "url":
        page.wait_for_url(cond.value, timeout=timeout_ms)  # type: ignore[arg-type]
    elif cond.kind == "delay":
        page.wait_for_timeout(_delay_ms(cond))


def _goto(page: Page, url: str, cond: WaitCondition, timeout_ms: int) -> None:
    """Load ``url`` and block until ``cond`` holds."""
    if url.startswith("data:text/html"):
        # Inline documents for tests and previews
        page.set_content(unquote(url.split(",", 1)[1]), timeout=timeout_ms)
        if not cond.is_load_state:
            _await_condition(page, cond, timeout_ms)
        return
    if cond.is_load_state:
        page.goto(url, wait_until=cond.kind, timeout=timeout_ms)  # type: ignore[arg-type]
        return
    page.goto(url, wait_until="load", timeout=timeout_ms)
    _await_condition(page, cond, timeout_ms)


def _absolute_url(url: str, variables: Mapping[str, str]) -> str:
    base = variables.get("base_url")
    if not base or urlparse(url).scheme:
        return url
    return urljoin(base.rstrip("/") + "/", url.lstrip("/"))


# --- Step handlers ---


def _run_navigate(
    ctx: _RunContext, index: int, step: Navigate, variables: Mapping[str, str]
) -> StepResult:
    url = _absolute_url(step.url, variables)
    missing = unbound_names(url)
    if missing:
        raise NavigationFailed(f"Unbound variables in URL {url!r}: {', '.join(missing)}")
    try:
        _goto(ctx.page, url, step.wait, step.timeout_ms)
    except PWTimeoutError as e:
        if step.relaxed is None:
            raise NavigationTimeout(
                f"Timed out loading {url} waiting for {step.wait.describe()}: {e}"
            ) from e
        logger.warning(
            "[%s] %s: %s timed out, retrying once with %s",
            ctx.flow_name,
            url,
            step.wait.describe(),
            step.relaxed.describe(),
        )
        try:
            _goto(ctx.page, url, step.relaxed, step.timeout_ms)
        except PWTimeoutError as e2:
            raise NavigationTimeout(
                f"Timed out loading {url} (also with {step.relaxed.describe()}): {e2}"
            ) from e2
        except PWError as e2:
            raise NavigationFailed(f"Failed to load {url}: {e2}") from e2
    except PWError as e:
        raise NavigationFailed(f"Failed to load {url}: {e}") from e

    if step.settle_ms:
        ctx.page.wait_for_timeout(step.settle_ms)
    return StepResult(index, step.kind, step_label(step), StepStatus.SUCCESS)


def _run_locate(
    ctx: _RunContext, index: int, step: LocateAndAct, variables: Mapping[str, str]  # noqa: ARG001
) -> StepResult:
    res = resolve_candidates(ctx.page, step.candidates, step.timeout_ms, ctx.poll_ms)
    label = step_label(step)
    if not res.found:
        if step.required:
            raise ElementNotFound(res.attempted, resolution=res)
        logger.warning(
            "[%s] step %d: optional element not found, tried %s", ctx.flow_name, index, list(res.attempted)
        )
        return StepResult(
            index, step.kind, label, StepStatus.SKIPPED, reason="no candidate matched", resolution=res
        )

    logger.info(
        "[%s] step %d: matched %r (%d elements, candidate %d/%d)",
        ctx.flow_name,
        index,
        res.selector,
        res.count,
        res.attempted.index(res.selector) + 1,  # type: ignore[arg-type]
        len(res.attempted),
    )
    target = ctx.page.locator(res.selector).first  # type: ignore[arg-type]
    action = step.action
    timeout = step.timeout_ms or DEFAULT_ACTION_TIMEOUT_MS
    try:
        if isinstance(action, Click):
            target.click(timeout=timeout)
        elif isinstance(action, Fill):
            target.fill(action.value, timeout=timeout)
        elif isinstance(action, Press):
            target.press(action.key, timeout=timeout)
        elif not isinstance(action, NoAction):
            raise ActionFailed(f"Unsupported action: {type(action).__name__}")
    except PWError as e:
        raise ActionFailed(
            f"{type(action).__name__.lower()} on {res.selector!r} failed: {e}", resolution=res
        ) from e
    return StepResult(index, step.kind, label, StepStatus.SUCCESS, resolution=res)


def _run_wait(
    ctx: _RunContext, index: int, step: WaitFor, variables: Mapping[str, str]  # noqa: ARG001
) -> StepResult:
    try:
        _await_condition(ctx.page, step.condition, step.timeout_ms or DEFAULT_ACTION_TIMEOUT_MS)
    except PWError as e:
        if step.required:
            raise WaitTimeout(f"Timed out waiting for {step.condition.describe()}: {e}") from e
        logger.warning(
            "[%s] step %d: %s not reached within %dms, continuing",
            ctx.flow_name,
            index,
            step.condition.describe(),
            step.timeout_ms,
        )
        return StepResult(index, step.kind, step_label(step), StepStatus.SKIPPED, reason="timed out")
    return StepResult(index, step.kind, step_label(step), StepStatus.SUCCESS)


def _run_capture(
    ctx: _RunContext, index: int, step: Capture, variables: Mapping[str, str]  # noqa: ARG001
) -> StepResult:
    missing = unbound_names(step.file_name)
    if missing:
        raise ScreenshotWriteFailed(
            f"Unbound variables in file name {step.file_name!r}: {', '.join(missing)}"
        )
    try:
        path = capture_path(ctx.output_dir, step.file_name, ctx.subdir)
    except (ValueError, OSError) as e:
        raise ScreenshotWriteFailed(str(e)) from e
    try:
        ctx.page.screenshot(path=str(path), full_page=step.full_page)
    except (PWError, OSError) as e:
        raise ScreenshotWriteFailed(f"Could not write {path}: {e}") from e
    ctx.result.captures.append(str(path))
    logger.info("[%s] step %d: saved %s", ctx.flow_name, index, path)
    return StepResult(index, step.kind, step_label(step), StepStatus.SUCCESS, path=str(path))


def _run_for_each(
    ctx: _RunContext, index: int, step: ForEachMatch, variables: Mapping[str, str]
) -> StepResult:
    label = step_label(step)
    try:
        texts = ctx.page.locator(step.selector).all_text_contents()
    except PWError as e:
        logger.debug("Collecting %r failed: %s", step.selector, e)
        texts = []
    items = dedupe_candidates(texts)
    if step.limit is not None:
        items = items[: step.limit]
    if not items:
        if step.required:
            raise ElementNotFound(
                [step.selector], message=f"No elements with text matched {step.selector!r}"
            )
        logger.warning("[%s] step %d: nothing matched %r", ctx.flow_name, index, step.selector)
        return StepResult(index, step.kind, label, StepStatus.SKIPPED, reason="no matches")

    logger.info("[%s] step %d: %d matches for %r", ctx.flow_name, index, len(items), step.selector)
    children: list[StepResult] = []
    child_index = 0
    for n, text in enumerate(items, start=1):
        item_vars = {**variables, "text": text, "slug": slugify(text), "index": str(n)}
        for child in step.steps:
            if ctx.cancelled():
                raise FlowCancelled(
                    partial=StepResult(
                        index, step.kind, label, StepStatus.SKIPPED, reason="cancelled", children=children
                    )
                )
            child_index += 1
            try:
                child_result = _run_step(ctx, child_index, bind_step(child, item_vars), item_vars)
            except FlowCancelled as e:
                # nested loop: keep what this loop collected around the inner partial
                if e.partial is not None:
                    e.partial.label = f"{text}: {e.partial.label}"
                    children.append(e.partial)
                e.partial = StepResult(
                    index, step.kind, label, StepStatus.SKIPPED, reason="cancelled", children=children
                )
                raise
            child_result.label = f"{text}: {child_result.label}"
            children.append(child_result)
            if child_result.status is StepStatus.FAILED and child.required:
                return StepResult(
                    index,
                    step.kind,
                    label,
                    StepStatus.FAILED,
                    reason=f"{text}: {child_result.reason}",
                    children=children,
                )
    return StepResult(index, step.kind, label, StepStatus.SUCCESS, children=children)


_HANDLERS: dict[type, Callable[..., StepResult]] = {
    Navigate: _run_navigate,
    LocateAndAct: _run_locate,
    WaitFor: _run_wait,
    Capture: _run_capture,
    ForEachMatch: _run_for_each,
}


def _run_step(ctx: _RunContext, index: int, step: Step, variables: Mapping[str, str]) -> StepResult:
    label = step_label(step)
    handler = _HANDLERS.get(type(step))
    if handler is None:
        return StepResult(
            index, "unknown", label, StepStatus.FAILED, reason=f"Unknown step type: {type(step).__name__}"
        )

    logger.info("[%s] step %d: %s", ctx.flow_name, index, label)
    try:
        return handler(ctx, index, step, variables)
    except FlowCancelled:
        raise
    except FlowError as e:
        e.step_index = index
        reason = f"{type(e).__name__}: {e}"
        failure = e
    except PWError as e:
        reason = f"browser error: {e}"
        failure = e

    if step.required:
        logger.error("[%s] step %d (%s) failed: %s", ctx.flow_name, index, label, reason)
    else:
        logger.warning("[%s] optional step %d (%s) failed: %s", ctx.flow_name, index, label, reason)
    return StepResult(
        index,
        step.kind,
        label,
        StepStatus.FAILED,
        reason=reason,
        resolution=getattr(failure, "resolution", None),
    )


def _skip_remaining(result: RunResult, steps: Sequence[Step], start: int, reason: str) -> None:
    """Record steps ``start``.. (1-based) as skipped."""
    for index, step in enumerate(steps[start - 1 :], start=start):
        result.steps.append(
            StepResult(index, step.kind, step_label(step), StepStatus.SKIPPED, reason=reason)
        )


def _mark_cancelled(result: RunResult, index: int) -> None:
    result.status = RunStatus.CANCELLED
    result.failed_step = index
    result.error = f"cancelled before step {index} completed"
    logger.warning("[%s] %s", result.flow_name, result.error)


# --- Entry points ---


def execute_flow(
    session: Any,
    flow: Flow,
    output_dir: str | Path,
    variables: Mapping[str, str] | None = None,
    cancel_event: threading.Event | None = None,
    poll_ms: int = DEFAULT_POLL_MS,
) -> RunResult:
    """Execute ``flow`` against an already started session.

    Never raises for step failures; they are reported in the returned RunResult.
    The caller owns the session and closes it.
    """
    bound = bind_flow(flow, variables)
    result = RunResult(flow_name=flow.name)
    ctx = _RunContext(
        flow_name=flow.name,
        page=session.page,
        output_dir=Path(output_dir),
        subdir=flow.output_subdir,
        result=result,
        cancel_event=cancel_event,
        poll_ms=poll_ms,
    )
    steps = bound.steps

    for index, step in enumerate(steps, start=1):
        if ctx.cancelled():
            _mark_cancelled(result, index)
            _skip_remaining(result, steps, index, "cancelled")
            break
        try:
            step_result = _run_step(ctx, index, step, bound.variables)
        except FlowCancelled as e:
            if e.partial is not None:
                result.steps.append(e.partial)
            _mark_cancelled(result, index)
            _skip_remaining(result, steps, index + 1, "cancelled")
            break
        result.steps.append(step_result)
        if step_result.status is StepStatus.FAILED and step.required:
            result.status = RunStatus.FAILED
            result.failed_step = index
            result.error = step_result.reason
            _skip_remaining(result, steps, index + 1, "not run")
            break

    logger.info(
        "[%s] finished: %s, %d captures", flow.name, result.status.value, len(result.captures)
    )
    return result


def run_flow(
    flow: Flow,
    settings: Settings | None = None,
    variables: Mapping[str, str] | None = None,
    cancel_event: threading.Event | None = None,
    session_factory: Callable[[Settings], Any] | None = None,
) -> RunResult:
    """Open a session, execute ``flow`` and always tear the session down."""
    settings = settings or default_settings
    factory = session_factory or Session.from_settings
    merged = {**settings.variables, **(variables or {})}

    if cancel_event is not None and cancel_event.is_set():
        result = RunResult(flow_name=flow.name)
        _mark_cancelled(result, 1)
        _skip_remaining(result, flow.steps, 1, "cancelled")
        return result

    try:
        session = factory(settings)
        with session:
            return execute_flow(
                session, flow, settings.output_dir, variables=merged, cancel_event=cancel_event
            )
    except PWError as e:
        logger.error("[%s] browser session failed: %s", flow.name, e)
        result = RunResult(
            flow_name=flow.name,
            status=RunStatus.FAILED,
            failed_step=0,
            error=f"browser session failed: {e}",
        )
        _skip_remaining(result, flow.steps, 1, "not run")
        return result


def run_flows(
    flows: Iterable[Flow],
    settings: Settings | None = None,
    variables: Mapping[str, str] | None = None,
    cancel_event: threading.Event | None = None,
    session_factory: Callable[[Settings], Any] | None = None,
) -> list[RunResult]:
    """Run flows one after another, each in its own session."""
    return [
        run_flow(
            flow,
            settings=settings,
            variables=variables,
            cancel_event=cancel_event,
            session_factory=session_factory,
        )
        for flow in flows
    ]


def run_job_with_id(job_id: str, req: RunRequest) -> RunResponse:
    """Run the flows named or defined in an API request."""
    from ..ir.loader import load_builtin_flow

    flows = [load_builtin_flow(name) for name in req.flows]
    try:
        flows.extend(spec.to_flow() for spec in req.definitions or [])
    except ValueError as e:
        raise FlowDefinitionError(f"Invalid flow definition: {e}") from e
    output_dir = str(Path(default_settings.output_dir) / req.output_dir) if req.output_dir else None
    job_settings = default_settings.with_overrides(output_dir=output_dir, headless=req.headless)
    results = run_flows(flows, settings=job_settings, variables=req.variables)

    if any(r.status is RunStatus.CANCELLED for r in results):
        status = RunStatus.CANCELLED
    elif all(r.ok for r in results):
        status = RunStatus.SUCCESS
    else:
        status = RunStatus.FAILED
    return RunResponse(
        job_id=job_id, status=status.value, results=[r.to_dict() for r in results]
    )


def run_job(req: RunRequest) -> RunResponse:
    return run_job_with_id(str(uuid.uuid4()), req)
