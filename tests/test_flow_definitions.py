"""Tests for JSON flow documents and the built-in flows."""

from __future__ import annotations

import json

import pytest

from docshots.core.errors import FlowDefinitionError
from docshots.core.ir.loader import (
    builtin_flow_names,
    load_builtin_flow,
    load_flows,
    parse_flows,
    resolve_flow_refs,
)
from docshots.core.ir.model import (
    Capture,
    Click,
    Fill,
    ForEachMatch,
    LocateAndAct,
    Navigate,
    NoAction,
    Press,
    WaitCondition,
    WaitFor,
)

MINIMAL = {
    "name": "dashboard",
    "steps": [
        {"kind": "navigate", "url": "/dashboard"},
        {"kind": "capture", "file_name": "dashboard.png", "full_page": True},
    ],
}


class TestParseFlows:
    def test_single_flow_object(self):
        (flow,) = parse_flows(MINIMAL)

        assert flow.name == "dashboard"
        nav, cap = flow.steps
        assert nav == Navigate("/dashboard", wait=WaitCondition("networkidle"))
        assert cap == Capture("dashboard.png", full_page=True)

    def test_document_with_several_flows(self):
        flows = parse_flows({"flows": [MINIMAL, {**MINIMAL, "name": "second"}]})
        assert [f.name for f in flows] == ["dashboard", "second"]

    def test_list_of_flows(self):
        assert len(parse_flows([MINIMAL, MINIMAL])) == 2

    def test_step_defaults(self):
        (flow,) = parse_flows(
            {
                "name": "defaults",
                "steps": [
                    {"kind": "locate", "candidates": ["#a"]},
                    {"kind": "wait", "condition": "load"},
                    {"kind": "capture", "file_name": "a.png"},
                ],
            }
        )
        locate, wait, capture = flow.steps

        assert locate.required is True
        assert isinstance(locate.action, Click)
        assert locate.timeout_ms == 5000
        assert wait.required is False
        assert wait.condition == WaitCondition("load")
        assert capture.required is True
        assert capture.full_page is False

    def test_locate_actions_and_string_candidates(self):
        (flow,) = parse_flows(
            {
                "name": "login",
                "steps": [
                    {
                        "kind": "locate",
                        "candidates": 'input[name="Username"], input#Username',
                        "action": "fill",
                        "value": "${username}",
                    },
                    {"kind": "locate", "candidates": ["#pw"], "action": "press", "value": "Enter"},
                    {"kind": "locate", "candidates": ["#pw"], "action": "none", "required": False},
                ],
            }
        )
        fill, press, none = flow.steps

        assert fill == LocateAndAct(
            ('input[name="Username"]', "input#Username"), action=Fill("${username}")
        )
        assert press.action == Press("Enter")
        assert isinstance(none.action, NoAction)
        assert none.required is False

    def test_wait_conditions(self):
        (flow,) = parse_flows(
            {
                "name": "waits",
                "steps": [
                    {"kind": "wait", "condition": {"kind": "delay", "value": 1500}},
                    {
                        "kind": "wait",
                        "condition": {"kind": "selector", "value": "[role=menu]", "state": "attached"},
                        "required": True,
                    },
                    {
                        "kind": "navigate",
                        "url": "/",
                        "relaxed": {"kind": "delay", "value": 2000},
                        "settle_ms": 250,
                    },
                ],
            }
        )
        delay, selector, nav = flow.steps

        assert delay == WaitFor(WaitCondition("delay", "1500"))
        assert selector.condition == WaitCondition("selector", "[role=menu]", "attached")
        assert selector.required is True
        assert nav.relaxed == WaitCondition("delay", "2000")
        assert nav.settle_ms == 250

    def test_templated_delay_is_accepted(self):
        (flow,) = parse_flows(
            {"name": "pause", "steps": [{"kind": "wait", "condition": {"kind": "delay", "value": "${pause}"}}]}
        )

        assert flow.steps[0].condition == WaitCondition("delay", "${pause}")

    def test_nested_for_each(self):
        (flow,) = parse_flows(
            {
                "name": "swagger",
                "steps": [
                    {
                        "kind": "for_each",
                        "selector": ".opblock-tag",
                        "limit": 3,
                        "steps": [
                            {"kind": "locate", "candidates": [".opblock-tag:has-text(\"${text}\")"]},
                            {"kind": "capture", "file_name": "${slug}.png"},
                        ],
                    }
                ],
            }
        )
        (loop,) = flow.steps

        assert isinstance(loop, ForEachMatch)
        assert loop.limit == 3
        assert isinstance(loop.steps[1], Capture)

    @pytest.mark.parametrize(
        "bad",
        [
            {"name": "x", "steps": []},
            {"name": "x", "steps": [{"kind": "teleport"}]},
            {"name": "x", "steps": [{"kind": "capture"}]},
            {"name": "x", "steps": [{"kind": "locate", "candidates": []}]},
            {"name": "x", "steps": [{"kind": "wait", "condition": {"kind": "selector"}}]},
            {"name": "x", "steps": [{"kind": "wait", "condition": {"kind": "delay", "value": "2s"}}]},
            {"name": "x", "steps": [{"kind": "capture", "file_name": "a.png", "colour": "red"}]},
        ],
    )
    def test_invalid_definitions(self, bad):
        with pytest.raises(FlowDefinitionError):
            parse_flows(bad)


class TestFlowFiles:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "flows.json"
        path.write_text(json.dumps({"flows": [MINIMAL]}), encoding="utf-8")

        assert [f.name for f in load_flows(path)] == ["dashboard"]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(FlowDefinitionError, match="not valid JSON"):
            load_flows(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FlowDefinitionError, match="Cannot read"):
            load_flows(tmp_path / "nope.json")

    def test_resolve_refs_mixes_files_and_builtins(self, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps(MINIMAL), encoding="utf-8")

        flows = resolve_flow_refs([str(path), "webapi"])

        assert [f.name for f in flows] == ["dashboard", "webapi"]

    def test_unknown_builtin(self):
        with pytest.raises(FlowDefinitionError, match="Unknown flow 'nope'"):
            load_builtin_flow("nope")


class TestBuiltinFlows:
    def test_builtins_are_listed(self):
        assert builtin_flow_names() == ["angular", "identityserver", "webapi"]

    @pytest.mark.parametrize("name", ["angular", "identityserver", "webapi"])
    def test_builtin_parses(self, name):
        flow = load_builtin_flow(name)

        assert flow.name == name
        assert flow.output_subdir == name
        assert flow.description

    def test_angular_captures(self):
        flow = load_builtin_flow("angular")
        files = [s.file_name for s in flow.steps if isinstance(s, Capture)]

        assert files == [
            "angular-login-page.png",
            "identityserver-login-${username}.png",
            "application-dashboard.png",
            "employee-list-page.png",
            "search-filtering-ui.png",
            "employee-form.png",
            "crud-operations.png",
        ]
        assert flow.variables["base_url"] == "http://localhost:4200"

    def test_angular_returns_to_application_before_dashboard(self):
        flow = load_builtin_flow("angular")
        names = [s.name for s in flow.steps]
        back = flow.steps[names.index("return to application")]
        dashboard = next(
            i for i, s in enumerate(flow.steps)
            if isinstance(s, Capture) and s.file_name == "application-dashboard.png"
        )

        assert isinstance(back, Navigate)
        assert back.url == "/"
        assert back.wait == WaitCondition("networkidle")
        assert back.required is False
        assert names.index("redirect back to application") < names.index("return to application") < dashboard

    def test_user_menu_lookup_is_optional(self):
        flow = load_builtin_flow("angular")
        menu = next(s for s in flow.steps if s.name == "open user menu")

        assert menu.required is False
        assert menu.candidates[0] == 'button[aria-label*="user" i]'

    def test_webapi_iterates_resources(self):
        flow = load_builtin_flow("webapi")
        loop = flow.steps[1]

        assert isinstance(loop, ForEachMatch)
        assert loop.selector == ".opblock-tag"
