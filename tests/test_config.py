"""
Tests for the question-bank checks run at start-up.
"""

import pytest

import config
from config import CATEGORIES, QUESTIONS, validate_question_bank
from models import Question
from visibility import AssessmentEngine

CATS = [{"id": "c", "name": "C"}]


def bank(**rule):
    return [
        {"id": "a", "category_id": "c", "text": "a", "type": "boolean"},
        {"id": "b", "category_id": "c", "text": "b", "type": "boolean", **rule},
    ]


class TestValidateQuestionBank:
    @pytest.mark.parametrize("assessment_type", sorted(QUESTIONS))
    def test_shipped_banks_are_clean(self, assessment_type):
        assert validate_question_bank(QUESTIONS[assessment_type], CATEGORIES[assessment_type]) == []

    def test_clean_bank(self):
        rule = {"conditional_logic": {"dependsOn": "a", "condition": "equals", "value": True}}
        assert validate_question_bank(bank(**rule), CATS) == []

    def test_dangling_reference_in_either_key_shape(self):
        camel = {"conditional_logic": {"dependsOn": "ghost", "condition": "equals", "value": True}}
        snake = {"visibility_rule": {"depends_on": "ghost", "operator": "equals", "value": True}}
        for rule in (camel, snake):
            assert validate_question_bank(bank(**rule)) == ["b: depends on unknown question 'ghost'"]

    def test_malformed_rule_is_a_warning(self):
        """The engine shows the question; the check reports the rule instead of raising."""
        questions = bank(conditional_logic=["a", "equals", True])
        warnings = validate_question_bank(questions)
        assert len(warnings) == 1
        assert warnings[0].startswith("b: visibility rule cannot be understood")
        assert AssessmentEngine(questions).is_visible("b", {})

    def test_unknown_operator(self):
        rule = {"conditional_logic": {"dependsOn": "a", "condition": "between", "value": 1}}
        assert "cannot be understood" in validate_question_bank(bank(**rule))[0]

    def test_bad_weights(self):
        questions = [
            {"id": "x", "category_id": "c", "weight": "heavy"},
            {"id": "y", "category_id": "c", "weight": -1},
        ]
        assert validate_question_bank(questions, CATS) == [
            "x: weight 'heavy' is not a number",
            "y: negative weight",
        ]
        assert Question.from_dict(questions[0]).weight == 1.0

    def test_unknown_category_type_and_missing_id(self):
        questions = [
            {"id": "x", "category_id": "nowhere", "type": "essay"},
            {"category_id": "c", "text": "orphan"},
        ]
        assert validate_question_bank(questions, CATS) == [
            "x: unknown category 'nowhere'",
            "x: unknown type 'essay'",
            "question without an id: 'orphan'",
        ]

    def test_level_rules_need_no_reference(self):
        questions = bank(visibility_rule={"type": "level"}, maturity_level=2)
        assert validate_question_bank(questions, CATS) == []


class TestSettings:
    def test_every_assessment_type_has_categories(self):
        for assessment_type in QUESTIONS:
            assert assessment_type in config.ASSESSMENT_TYPES
            assert CATEGORIES[assessment_type]
