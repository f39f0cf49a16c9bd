"""End-to-end runs against a real Chromium page.

Opt in with RUN_BROWSER_TESTS=1 (requires `playwright install chromium`).
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import quote

import pytest

from docshots.config.settings import Settings
from docshots.core.executor.result import RunStatus, StepStatus
from docshots.core.executor.runner import run_flow
from docshots.core.ir.loader import parse_flows

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not os.getenv("RUN_BROWSER_TESTS"), reason="Set RUN_BROWSER_TESTS=1"),
]

PAGE = """
<html>
  <body>
    <header><button class="account-button" onclick="document.getElementById('menu').style.display='block'">Me</button></header>
    <div id="menu" role="menu" style="display:none">Login</div>
    <input name="Username" />
  </body>
</html>
"""


def _flow(required_missing: bool = False):
    (flow,) = parse_flows(
        {
            "name": "stub",
            "steps": [
                {"kind": "navigate", "url": "data:text/html," + quote(PAGE), "wait": "load"},
                {
                    "kind": "locate",
                    "candidates": ['button[aria-label*="user" i]', ".user-button", ".account-button"],
                },
                {
                    "kind": "wait",
                    "condition": {"kind": "selector", "value": "[role=menu]"},
                    "required": True,
                },
                {
                    "kind": "locate",
                    "candidates": 'input[name="Username"], input#Username',
                    "action": "fill",
                    "value": "${username}",
                },
                {
                    "kind": "locate",
                    "candidates": ["#does-not-exist"],
                    "timeout_ms": 100,
                    "required": required_missing,
                },
                {"kind": "capture", "file_name": "menu.png"},
            ],
        }
    )
    return flow


def test_menu_flow_in_chromium(tmp_path: Path):
    settings = Settings(output_dir=str(tmp_path), headless=True, variables={})

    result = run_flow(_flow(), settings=settings, variables={"username": "ashtyn1"})

    assert result.status is RunStatus.SUCCESS, result.summary()
    assert result.steps[1].resolution.selector == ".account-button"
    assert result.steps[4].status is StepStatus.SKIPPED
    assert (tmp_path / "menu.png").stat().st_size > 0


def test_required_missing_element_in_chromium(tmp_path: Path):
    settings = Settings(output_dir=str(tmp_path), headless=True, variables={})

    result = run_flow(_flow(required_missing=True), settings=settings)

    assert result.status is RunStatus.FAILED
    assert result.failed_step == 5
    assert result.steps[5].status is StepStatus.SKIPPED
    assert not (tmp_path / "menu.png").exists()
