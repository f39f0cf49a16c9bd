"""Load flow definitions from JSON documents.

A document is either a single flow object or ``{"flows": [...]}``. Built-in
flows ship as JSON files in the ``docshots/flows`` directory.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..errors import FlowDefinitionError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .model import Flow

FLOWS_DIR = Path(__file__).resolve().parents[2] / "flows"


def parse_flows(data: Any) -> list[Flow]:
    from ...api.dto import FlowDocument, FlowSpec

    try:
        if isinstance(data, dict) and "flows" in data:
            specs = FlowDocument.model_validate(data).flows
        elif isinstance(data, list):
            specs = [FlowSpec.model_validate(item) for item in data]
        else:
            specs = [FlowSpec.model_validate(data)]
        return [spec.to_flow() for spec in specs]
    except (ValidationError, ValueError) as e:
        raise FlowDefinitionError(f"Invalid flow definition: {e}") from e


def load_flows(path: str | Path) -> list[Flow]:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise FlowDefinitionError(f"Cannot read flow file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise FlowDefinitionError(f"{path} is not valid JSON: {e}") from e
    return parse_flows(data)


def builtin_flow_names() -> list[str]:
    return sorted(p.stem for p in FLOWS_DIR.glob("*.json"))


def load_builtin_flow(name: str) -> Flow:
    path = FLOWS_DIR / f"{name}.json"
    if not path.is_file():
        raise FlowDefinitionError(
            f"Unknown flow '{name}'. Available: {', '.join(builtin_flow_names()) or 'none'}"
        )
    flows = load_flows(path)
    if len(flows) != 1:
        raise FlowDefinitionError(f"Built-in flow file {path.name} must hold exactly one flow")
    return flows[0]


def resolve_flow_refs(refs: Iterable[str]) -> list[Flow]:
    """Turn CLI/API references (built-in names or JSON paths) into flows."""
    flows: list[Flow] = []
    for ref in refs:
        if ref.endswith(".json") or Path(ref).is_file():
            flows.extend(load_flows(ref))
        else:
            flows.append(load_builtin_flow(ref))
    return flows
