"""
Tests for question visibility, progress and response bookkeeping.

Covers both gating strategies (explicit rules only, and maturity levels),
the fail-open behaviour for rules that cannot be evaluated, and the
cascading clear of dependent answers.
"""

import pytest

from models import ExplicitDependency, LevelDependency, MalformedRule, Question, Response
from visibility import (
    EXPLICIT,
    LEVEL,
    AssessmentEngine,
    compare,
    compute_progress,
    engine_for,
    is_qualifying,
    is_visible,
    strict_equals,
)


def q(qid, category="c1", **kw):
    return Question.from_dict({"id": qid, "category_id": category, "text": qid, **kw})


def resp(**values):
    return {k: Response(value=v) for k, v in values.items()}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def level_bank():
    """Two level-1 booleans, one level-2 scale, one level-3 question."""
    return [
        q("l1a", type="boolean", maturity_level=1),
        q("l1b", type="boolean", maturity_level=1),
        q("l2", type="scale", maturity_level=2, visibility_rule={"type": "level"}),
        q("l3", type="text", maturity_level=3, visibility_rule={"type": "level"}),
        q("other", category="c2", type="boolean", maturity_level=1),
    ]


@pytest.fixture
def explicit_bank():
    return [
        q("root", type="scale"),
        q(
            "child",
            type="boolean",
            conditional_logic={"dependsOn": "root", "condition": "greater_than", "value": 2},
        ),
        q(
            "grandchild",
            type="text",
            conditional_logic={"dependsOn": "child", "condition": "equals", "value": True},
        ),
        q("free", type="text"),
    ]


# ============================================================================
# Rule evaluation
# ============================================================================

class TestLevelDependency:
    """Maturity level gating."""

    def test_level_one_and_ruleless_questions_always_visible(self, level_bank):
        """Questions at level 1 or without a rule show with no answers at all."""
        assert is_visible(level_bank[0], level_bank, {})
        assert is_visible(level_bank[4], level_bank, {})
        assert is_visible(q("plain"), [q("plain")], {})

    def test_level_two_needs_all_level_one_siblings(self, level_bank):
        """Level 2 shows only once every level-1 question of its category qualifies."""
        l2 = level_bank[2]
        assert not is_visible(l2, level_bank, {})
        assert not is_visible(l2, level_bank, resp(l1a=True))
        assert is_visible(l2, level_bank, resp(l1a=True, l1b=True))

    def test_withdrawing_a_qualifying_answer_hides_again(self, level_bank):
        """Changing a level-1 answer to a non-qualifying one hides level 2."""
        l2 = level_bank[2]
        assert not is_visible(l2, level_bank, resp(l1a=True, l1b=False))

    def test_scale_qualifies_at_four(self, level_bank):
        """A scale answer of 4 or more qualifies for the next level."""
        l3 = level_bank[3]
        answers = resp(l1a=True, l1b=True, l2=3)
        assert not is_visible(l3, level_bank, answers)
        answers = resp(l1a=True, l1b=True, l2=4)
        assert is_visible(l3, level_bank, answers)

    def test_stale_answer_on_hidden_level_does_not_unlock(self, level_bank):
        """A level-2 answer kept while level 2 is hidden does not open level 3."""
        l3 = level_bank[3]
        answers = resp(l1a=False, l1b=True, l2=5)
        assert not is_visible(l3, level_bank, answers)

    def test_other_categories_do_not_gate(self, level_bank):
        """Level prerequisites come from the same category only."""
        answers = resp(l1a=True, l1b=True, other=False)
        assert is_visible(level_bank[2], level_bank, answers)


class TestExplicitDependency:
    """Conditional logic rules."""

    def test_greater_than(self, explicit_bank):
        """greater_than shows the question only for larger numeric answers."""
        child = explicit_bank[1]
        assert not is_visible(child, explicit_bank, {})
        assert not is_visible(child, explicit_bank, resp(root=2))
        assert is_visible(child, explicit_bank, resp(root=3))

    def test_non_numeric_answer_hides(self, explicit_bank):
        """A non-numeric answer never satisfies a numeric comparison."""
        assert not is_visible(explicit_bank[1], explicit_bank, resp(root="lots"))

    def test_equals_is_strict(self):
        """True is not equal to 1, and 1 is not equal to True."""
        bank = [
            q("a", type="boolean"),
            q("b", conditional_logic={"dependsOn": "a", "condition": "equals", "value": True}),
        ]
        assert is_visible(bank[1], bank, resp(a=True))
        assert not is_visible(bank[1], bank, resp(a=1))
        assert not is_visible(bank[1], bank, resp(a=False))

    def test_not_equals(self):
        bank = [
            q("a", type="boolean"),
            q("b", conditional_logic={"dependsOn": "a", "condition": "not_equals", "value": True}),
        ]
        assert is_visible(bank[1], bank, resp(a=False))
        assert not is_visible(bank[1], bank, resp(a=True))
        assert not is_visible(bank[1], bank, {})

    def test_less_than(self):
        bank = [
            q("a", type="scale"),
            q("b", conditional_logic={"dependsOn": "a", "condition": "less_than", "value": 3}),
        ]
        assert is_visible(bank[1], bank, resp(a=2))
        assert not is_visible(bank[1], bank, resp(a=3))

    def test_chain_requires_visible_source(self, explicit_bank):
        """A grandchild stays hidden while its parent is hidden, even if answered."""
        gc = explicit_bank[2]
        assert is_visible(gc, explicit_bank, resp(root=4, child=True))
        assert not is_visible(gc, explicit_bank, resp(root=1, child=True))

    def test_plain_dict_responses_are_accepted(self, explicit_bank):
        """The UI store keeps {"value": ...} dicts; those work as well."""
        assert is_visible(explicit_bank[1], explicit_bank, {"root": {"value": 5}})


class TestFailOpen:
    """Rules that cannot be evaluated leave the question visible."""

    def test_dangling_dependency(self):
        """A rule pointing at a missing question shows the question."""
        bank = [q("b", conditional_logic={"dependsOn": "ghost", "condition": "equals", "value": 1})]
        assert is_visible(bank[0], bank, {})

    def test_malformed_rule(self):
        """Unknown operators are loaded as MalformedRule and evaluate as visible."""
        question = q("b", conditional_logic={"dependsOn": "a", "condition": "roughly", "value": 1})
        assert isinstance(question.visibility_rule, MalformedRule)
        assert is_visible(question, [q("a"), question], {})

    def test_non_numeric_comparison_value(self):
        """A rule comparing against a non-number cannot be evaluated."""
        bank = [
            q("a", type="scale"),
            q("b", conditional_logic={"dependsOn": "a", "condition": "greater_than", "value": "high"}),
        ]
        assert is_visible(bank[1], bank, resp(a=2))

    def test_unknown_operator_constructed_directly(self):
        assert compare("between", 1, 2) is None

    def test_circular_rules_do_not_recurse_forever(self):
        """Two questions depending on each other still evaluate."""
        bank = [
            q("a", conditional_logic={"dependsOn": "b", "condition": "equals", "value": True}),
            q("b", conditional_logic={"dependsOn": "a", "condition": "equals", "value": True}),
        ]
        assert is_visible(bank[0], bank, resp(a=True, b=True))


class TestHelpers:
    def test_strict_equals(self):
        assert strict_equals(1, 1.0)
        assert not strict_equals(True, 1)
        assert not strict_equals("1", 1)
        assert strict_equals("Monthly", "Monthly")

    def test_is_qualifying(self):
        choice = q("m", type="multi_choice", options={"options": ["None", "Some", "Full"]})
        assert is_qualifying(choice, "Full")
        assert not is_qualifying(choice, "Some")
        assert is_qualifying(q("t", type="text"), "anything")
        assert not is_qualifying(q("t", type="text"), None)

    def test_rule_parsing(self):
        assert q("x", visibility_rule={"type": "level"}).visibility_rule == LevelDependency()
        rule = q("x", conditional_logic={"depends_on": "a", "operator": "less_than", "value": 2}).visibility_rule
        assert rule == ExplicitDependency("a", "less_than", 2)


# ============================================================================
# Progress
# ============================================================================

class TestProgress:
    def test_empty_scope(self):
        assert compute_progress([], {}) == 0

    def test_hidden_questions_count_in_denominator(self, explicit_bank):
        """Hidden questions lower the percentage but their answers never raise it."""
        assert compute_progress(explicit_bank, resp(root=1)) == 25
        assert compute_progress(explicit_bank, resp(root=1, child=True, grandchild="x")) == 25

    def test_rounds_half_up(self):
        """One of eight is 12.5%, reported as 13."""
        bank = [q(f"q{i}") for i in range(8)]
        assert compute_progress(bank, resp(q0=True)) == 13

    def test_monotone_in_visible_answers(self, explicit_bank):
        """Answering another visible question never lowers progress."""
        before = compute_progress(explicit_bank, resp(root=4))
        after = compute_progress(explicit_bank, resp(root=4, free="done"))
        assert after > before

    def test_scope_uses_full_question_set_for_rules(self, explicit_bank):
        """Rules can refer to questions outside the scope being measured."""
        scope = [explicit_bank[1]]
        assert compute_progress(scope, resp(root=5, child=True), all_questions=explicit_bank) == 100


# ============================================================================
# Engine
# ============================================================================

class TestAssessmentEngine:
    def test_rejects_unknown_gating(self):
        with pytest.raises(ValueError):
            AssessmentEngine([], gating="random")

    def test_level_gating_applies_implicit_rule(self):
        """Under level gating a level-2 question needs no explicit rule to be gated."""
        bank = [
            {"id": "a", "category_id": "c", "text": "a", "type": "boolean", "maturity_level": 1},
            {"id": "b", "category_id": "c", "text": "b", "type": "boolean", "maturity_level": 2},
        ]
        level = AssessmentEngine(bank, gating=LEVEL)
        explicit = AssessmentEngine(bank, gating=EXPLICIT)
        assert not level.is_visible("b", {})
        assert level.is_visible("b", resp(a=True))
        assert explicit.is_visible("b", {})

    def test_unknown_id_is_not_visible(self, explicit_bank):
        assert not AssessmentEngine(explicit_bank).is_visible("nope", {})

    def test_categories_and_progress(self, level_bank):
        engine = AssessmentEngine(level_bank, gating=LEVEL)
        assert engine.categories() == ["c1", "c2"]
        answers = resp(l1a=True, l1b=True, other=True)
        assert engine.category_progress(answers) == {"c1": 50, "c2": 100}
        assert [x.id for x in engine.visible_questions(answers, "c1")] == ["l1a", "l1b", "l2"]

    def test_update_response_clears_dependents_transitively(self, explicit_bank):
        """Changing an answer clears every explicit dependent down the chain."""
        engine = AssessmentEngine(explicit_bank)
        answers = resp(root=4, child=True, grandchild="yes", free="kept")
        updated = engine.update_response(answers, "root", 1)
        assert updated["root"].value == 1
        assert "child" not in updated
        assert "grandchild" not in updated
        assert updated["free"].value == "kept"
        # input is not modified
        assert answers["child"].value is True

    def test_same_value_keeps_dependents(self, explicit_bank):
        engine = AssessmentEngine(explicit_bank)
        answers = resp(root=4, child=True)
        assert "child" in engine.update_response(answers, "root", 4)

    def test_evidence_only_update_keeps_value_and_dependents(self, explicit_bank):
        engine = AssessmentEngine(explicit_bank)
        answers = resp(root=4, child=True)
        updated = engine.update_response(answers, "root", 4, evidence=["policy.pdf"])
        assert updated["root"].evidence_names() == ["policy.pdf"]
        assert "child" in updated
        again = engine.update_response(updated, "root", 5)
        assert again["root"].evidence_names() == ["policy.pdf"]

    def test_attach_evidence_adds_to_earlier_files(self, explicit_bank):
        """A second upload keeps the first one; re-uploading a name replaces it."""
        engine = AssessmentEngine(explicit_bank)
        answers = resp(root=4, child=True)
        answers = engine.attach_evidence(answers, "root", ["policy.pdf"])
        answers = engine.attach_evidence(answers, "root", ["minutes.pdf", "policy.pdf"])
        assert answers["root"].evidence_names() == ["minutes.pdf", "policy.pdf"]
        assert answers["root"].value == 4
        assert "child" in answers

    def test_attach_evidence_before_answering(self, explicit_bank):
        engine = AssessmentEngine(explicit_bank)
        answers = engine.attach_evidence({}, "free", ["bia.xlsx"])
        assert answers["free"].value is None
        assert answers["free"].evidence_names() == ["bia.xlsx"]

    def test_orphaned_and_prune(self, level_bank):
        """Hidden and unknown answers are orphans; prune drops them and empty answers."""
        engine = AssessmentEngine(level_bank, gating=LEVEL)
        answers = resp(l1a=False, l1b=True, l2=5, ghost=1, other=None)
        assert set(engine.orphaned(answers)) == {"l2", "ghost"}
        assert set(engine.prune(answers)) == {"l1a", "l1b"}

    def test_engine_for_uses_configured_gating(self):
        assert engine_for("maturity").gating == LEVEL
        assert engine_for("resiliency").gating == EXPLICIT
        assert len(engine_for("gap")) > 0

    def test_configured_chain(self):
        """In the resiliency bank the committee cadence question follows the committee answer."""
        engine = engine_for("resiliency")
        assert not engine.is_visible("res-gov-2", {})
        assert engine.is_visible("res-gov-2", resp(**{"res-gov-1": True}))


# ============================================================================
# Large question banks
# ============================================================================

@pytest.fixture
def deep_level_bank():
    """4 categories x 5 levels x 10 booleans, every one answered Yes."""
    bank = [
        q(f"c{c}-l{level}-{i}", category=f"c{c}", type="boolean", maturity_level=level)
        for c in range(4)
        for level in range(1, 6)
        for i in range(10)
    ]
    return bank, resp(**{x.id: True for x in bank})


class TestLargeBanks:
    def test_each_question_evaluated_once_per_pass(self, deep_level_bank, monkeypatch):
        """Deep level chains are evaluated once per question, not once per path."""
        import visibility

        bank, answers = deep_level_bank
        calls = []
        evaluate = visibility._Evaluator._evaluate

        def counting(self, question, visiting):
            calls.append(question.id)
            return evaluate(self, question, visiting)

        monkeypatch.setattr(visibility._Evaluator, "_evaluate", counting)
        engine = AssessmentEngine(bank, gating=LEVEL)
        shown = engine.visibility_map(answers)
        assert all(shown.values())
        assert len(calls) == len(bank)

        calls.clear()
        assert engine.progress(answers) == 100
        assert len(calls) == len(bank)

    def test_summary_of_deep_bank_is_fast(self, deep_level_bank):
        import time

        from scoring import summarize

        bank, answers = deep_level_bank
        engine = AssessmentEngine(bank, gating=LEVEL)
        start = time.perf_counter()
        summary = summarize(engine, answers)
        assert time.perf_counter() - start < 2.0
        assert summary["progress"] == 100
        assert set(summary["category_progress"].values()) == {100}

    def test_one_missing_answer_hides_the_levels_above(self, deep_level_bank):
        bank, answers = deep_level_bank
        del answers["c0-l2-3"]
        engine = AssessmentEngine(bank, gating=LEVEL)
        shown = engine.visibility_map(answers)
        assert shown["c0-l2-0"]
        assert not any(shown[f"c0-l{level}-{i}"] for level in (3, 4, 5) for i in range(10))
        assert all(shown[f"c1-l5-{i}"] for i in range(10))
        assert engine.progress(answers, "c0") == 38

    def test_circular_rules_agree_with_single_lookups(self):
        """The map gives the same answer as asking about each question on its own."""
        bank = [
            q("a", conditional_logic={"dependsOn": "b", "condition": "equals", "value": True}),
            q("b", conditional_logic={"dependsOn": "a", "condition": "equals", "value": True}),
            q("c", conditional_logic={"dependsOn": "a", "condition": "equals", "value": True}),
        ]
        engine = AssessmentEngine(bank)
        for answers in (resp(a=True, b=True, c=True), resp(a=True, b=False), resp(b=True)):
            shown = engine.visibility_map(answers)
            assert shown == {x.id: engine.is_visible(x, answers) for x in bank}
