"""
Tests for the template merge engine and plan generation.
"""

from datetime import date

import pytest

from errors import UnknownPlanTypeError
from plan_generator import (
    Each,
    If,
    Text,
    Var,
    generate_plan,
    nest_fields,
    parse,
    placeholders,
    procedures_from_text,
    render,
    rows_from_text,
    stringify,
)
from plan_templates import PLAN_TEMPLATES


class TestRender:
    """Placeholder, conditional and loop rendering."""

    def test_scalar_placeholder(self):
        assert render("Hello {{name}}", {"name": "Acme"}) == "Hello Acme"

    def test_missing_value_renders_empty(self):
        assert render("Hello {{name}}", {}) == "Hello "

    def test_if_block(self):
        tpl = "{{#if dept}}Dept: {{dept}}{{/if}}"
        assert render(tpl, {"dept": "IT"}) == "Dept: IT"
        assert render(tpl, {"dept": None}) == ""
        assert render(tpl, {}) == ""

    def test_each_block(self):
        tpl = "{{#each items}}- {{n}}\n{{/each}}"
        assert render(tpl, {"items": [{"n": "a"}, {"n": "b"}]}) == "- a\n- b\n"
        assert render(tpl, {"items": []}) == ""
        assert render(tpl, {"items": "not a list"}) == ""

    def test_every_each_block_expands(self):
        """Two loops in one template both render."""
        tpl = "{{#each a}}{{this}}{{/each}}|{{#each b}}{{this}}{{/each}}"
        assert render(tpl, {"a": ["x", "y"], "b": ["z"]}) == "xy|z"

    def test_nested_each_with_positions(self):
        """Inner loops see their own index and fall back to outer names."""
        tpl = "{{#each phases}}{{phase}}:{{#each tasks}} {{@number}}.{{task}}/{{owner}}{{/each}};{{/each}}"
        data = {
            "owner": "ops",
            "phases": [
                {"phase": "P1", "tasks": [{"task": "a"}, {"task": "b", "owner": "it"}]},
                {"phase": "P2", "tasks": [{"task": "c"}]},
            ],
        }
        assert render(tpl, data) == "P1: 1.a/ops 2.b/it;P2: 1.c/ops;"

    def test_index_is_zero_based(self):
        assert render("{{#each xs}}{{@index}}{{/each}}", {"xs": ["a", "b", "c"]}) == "012"

    def test_dotted_path(self):
        data = {"testingMaintenance": {"frequency": "Quarterly"}}
        assert render("{{testingMaintenance.frequency}}", data) == "Quarterly"
        assert render("{{testingMaintenance.missing.deeper}}", data) == ""

    def test_no_escaping(self):
        assert render("{{x}}", {"x": "<b>&</b>"}) == "<b>&</b>"

    def test_satisfied_template_leaves_no_markers(self):
        """A template with every field supplied renders without {{ or }}."""
        tpl = PLAN_TEMPLATES["crisis"].body_template
        out = render(tpl, {name: "v" for name in placeholders(tpl)})
        assert "{{" not in out
        assert "}}" not in out


class TestMalformedMarkers:
    """Broken templates render their text and drop the broken markers."""

    def test_unclosed_if_keeps_body(self):
        assert render("a{{#if x}}b{{y}}", {"y": "Y"}) == "abY"

    def test_stray_close_is_dropped(self):
        assert render("a{{/each}}b", {}) == "ab"

    def test_unterminated_tag_is_literal(self):
        assert render("Hello {{name", {"name": "x"}) == "Hello {{name"

    def test_inner_unclosed_block_inside_closed_outer(self):
        """An unclosed inner if is flattened into the enclosing each."""
        tpl = "{{#each xs}}[{{#if flag}}{{this}}{{/each}}]"
        assert render(tpl, {"xs": ["a", "b"]}) == "[a[b]"

    def test_unknown_helper_dropped(self):
        assert render("{{#with x}}y{{/with}}", {}) == "y"


class TestParse:
    def test_ast_shape(self):
        nodes = parse("Hi {{name}}{{#if a}}A{{/if}}{{#each b}}{{c}}{{/each}}")
        assert nodes == [
            Text("Hi "),
            Var("name"),
            If("a", [Text("A")]),
            Each("b", [Var("c")]),
        ]

    def test_placeholders_in_first_use_order(self):
        assert placeholders("{{b}} {{#if a}}{{b}}{{c}}{{/if}}") == ["b", "a", "c"]


class TestStringify:
    def test_values(self):
        assert stringify(None) == ""
        assert stringify(True) == "Yes"
        assert stringify(False) == "No"
        assert stringify(4.0) == "4"
        assert stringify(2.5) == "2.5"
        assert stringify(["a", 1]) == "a, 1"


class TestFormData:
    def test_rows_from_text(self):
        rows = rows_from_text("Payroll | 1 | 4\n\nSales|2", ["name", "priority", "rto"])
        assert rows == [
            {"name": "Payroll", "priority": "1", "rto": "4"},
            {"name": "Sales", "priority": "2", "rto": ""},
        ]

    def test_procedures_grouped_by_phase(self):
        text = "Respond | Call team | Ops | 1h\nRecover | Restore DB | DBA | 4h\nRespond | Assess | Ops | 2h"
        phases = procedures_from_text(text)
        assert [p["phase"] for p in phases] == ["Respond", "Recover"]
        assert [t["task"] for t in phases[0]["tasks"]] == ["Call team", "Assess"]

    def test_nest_fields(self):
        assert nest_fields({"a": 1, "t.x": 2, "t.y": 3}) == {"a": 1, "t": {"x": 2, "y": 3}}


class TestGeneratePlan:
    def test_bcp_plan(self):
        """Defaults are applied and list sections are expanded."""
        form = {
            "planOwner": "Jane",
            "criticalFunctions": [
                {"name": "Payroll", "priority": "1", "rto": "4", "rpo": "1", "dependencies": "HR system"},
                {"name": "Sales", "priority": "2", "rto": "8", "rpo": "4", "dependencies": "CRM"},
            ],
        }
        plan = generate_plan("bcp", "organization", form, {"name": "Acme", "industry": "Retail"}, today=date(2024, 5, 1))
        assert plan.title == "Acme Business Continuity Plan"
        assert "- Version: 1.0" in plan.content
        assert "- Last Review: 2024-05-01" in plan.content
        assert "- Industry: Retail" in plan.content
        assert "### Payroll" in plan.content
        assert "### Sales" in plan.content
        assert "{{" not in plan.content

    def test_department_only_in_department_scope(self):
        form = {"department": "Finance"}
        org_plan = generate_plan("bcp", "organization", form, "Acme")
        dept_plan = generate_plan("bcp", "department", form, "Acme")
        assert "Department: Finance" not in org_plan.content
        assert "Department: Finance" in dept_plan.content
        assert dept_plan.title == "Acme Business Continuity Plan - Finance"

    def test_nested_recovery_procedures(self):
        form = {"recoveryProcedures": procedures_from_text("Recover | Restore DB | DBA | 4h")}
        plan = generate_plan("disaster-recovery", "organization", form, "Acme")
        assert "- Task 1: Restore DB (owner: DBA, timing: 4h)" in plan.content

    def test_unknown_plan_type(self):
        with pytest.raises(UnknownPlanTypeError) as exc:
            generate_plan("nope", "organization", {}, "Acme")
        assert str(exc.value) == "No template found for plan type: nope"
        assert isinstance(exc.value, KeyError)
