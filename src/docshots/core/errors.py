"""Errors raised while executing a flow.

The executor turns a ``FlowError`` raised by a required step into a failed
``RunResult``; for optional steps it is downgraded to a warning.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .executor.result import CandidateResolution, StepResult


class FlowError(Exception):
    """Base class for step failures."""

    def __init__(
        self,
        message: str,
        step_index: int | None = None,
        resolution: CandidateResolution | None = None,
    ) -> None:
        super().__init__(message)
        self.step_index = step_index
        self.resolution = resolution


class NavigationFailed(FlowError):
    pass


class NavigationTimeout(NavigationFailed):
    pass


class ElementNotFound(FlowError):
    def __init__(
        self,
        selectors: Sequence[str],
        step_index: int | None = None,
        resolution: CandidateResolution | None = None,
        message: str | None = None,
    ) -> None:
        self.selectors = tuple(selectors)
        super().__init__(
            message
            or f"No element matched any of {len(self.selectors)} selectors: "
            + ", ".join(repr(s) for s in self.selectors),
            step_index,
            resolution,
        )


class ActionFailed(FlowError):
    pass


class WaitTimeout(FlowError):
    pass


class ScreenshotWriteFailed(FlowError):
    pass


class FlowCancelled(FlowError):
    """Raised at a step boundary once cancellation was requested.

    ``partial`` holds the result of a compound step interrupted between children.
    """

    def __init__(self, message: str = "cancelled", partial: StepResult | None = None) -> None:
        super().__init__(message)
        self.partial = partial


class FlowDefinitionError(ValueError):
    """A flow document could not be parsed or validated."""
