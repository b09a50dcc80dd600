# visibility.py
"""
Question visibility and progress engine.

Resiliency scoring, gap analysis and maturity assessment all decide which
questions to show with the same two rules:

* level dependency: a question at maturity level N is shown once every
  question at level N-1 of the same category has a qualifying answer;
* explicit dependency: a question is shown when another question's answer
  satisfies a comparison (equals, not_equals, greater_than, less_than).

Which of them applies is configuration (the `gating` of an assessment type).
All functions here are pure and never raise on bad rule data: a rule that
cannot be evaluated leaves its question visible.
"""

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional

import config
from models import (
    EvidenceFile,
    ExplicitDependency,
    LevelDependency,
    MalformedRule,
    Question,
    Response,
)

logger = logging.getLogger(__name__)

QUALIFYING_SCALE_SCORE = 4

# Visibility strategies
EXPLICIT = "explicit"
LEVEL = "level"
STRATEGIES = (EXPLICIT, LEVEL)


# ----------- Helpers -------------
def response_value(responses, question_id):
    """
    Return the recorded answer for `question_id`, or None.

    Accepts both `Response` objects and the plain ``{"value": ...}`` dicts
    kept in the UI store.
    """
    if not responses:
        return None
    r = responses.get(question_id)
    if r is None:
        return None
    if isinstance(r, Response):
        return r.value
    if isinstance(r, dict):
        return r.get("value")
    return r


def _is_number(v):
    if isinstance(v, bool):
        return False
    if isinstance(v, (int, float)):
        return not math.isnan(v)
    return False


def _as_number(v):
    """Numeric view of an answer; strings such as "3" are accepted. None if not numeric."""
    if isinstance(v, bool) or v is None:
        return None
    if _is_number(v):
        return float(v)
    try:
        f = float(str(v).strip())
    except ValueError:
        return None
    return None if math.isnan(f) else f


def strict_equals(a, b):
    """Equality that never treats booleans and numbers as interchangeable."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def is_qualifying(question: Question, value) -> bool:
    """
    Whether `value` counts as a positive answer for level gating.

    boolean -> True; scale -> >= 4; multi_choice -> the last (best) option;
    any other type qualifies as soon as it is answered.
    """
    if value is None:
        return False
    if question.type == "boolean":
        return value is True
    if question.type == "scale":
        n = _as_number(value)
        return n is not None and n >= QUALIFYING_SCALE_SCORE
    if question.type == "multi_choice":
        options = question.option_list
        return bool(options) and strict_equals(value, options[-1])
    return True


def compare(operator: str, actual, expected):
    """
    Apply a conditional-logic operator.

    :return: True/False, or None when the rule itself cannot be evaluated
             (unknown operator, non-numeric comparison value)
    """
    if operator == "equals":
        return strict_equals(actual, expected)
    if operator == "not_equals":
        return not strict_equals(actual, expected)
    if operator in ("greater_than", "less_than"):
        limit = _as_number(expected)
        if limit is None:
            return None
        n = _as_number(actual)
        if n is None:
            return False
        return n > limit if operator == "greater_than" else n < limit
    return None


# ----------- Rule evaluation -------------
def _own_rule(question):
    return question.visibility_rule


class _Evaluator:
    """
    Visibility of every question for one set of responses.

    Results are memoised per question id. A result that depended on a
    circular rule is not memoised, since it varies with the entry point.
    """

    def __init__(self, all_questions, responses, rule_for):
        self.responses = responses
        self.rule_for = rule_for
        self.by_id = {}
        self.by_level = {}
        for q in all_questions:
            self.by_id.setdefault(q.id, q)
            self.by_level.setdefault((q.category_id, q.maturity_level), []).append(q)
        self.memo: Dict[str, bool] = {}
        self.cycles = 0

    def visible(self, question, visiting=frozenset()):
        if question.id in self.memo:
            return self.memo[question.id]
        if question.id in visiting:
            logger.debug("Circular visibility rule at question %s; showing it", question.id)
            self.cycles += 1
            return True
        cycles = self.cycles
        result = self._evaluate(question, visiting | {question.id})
        if self.cycles == cycles:
            self.memo[question.id] = result
        return result

    def _evaluate(self, question, visiting):
        # A prerequisite only counts while it is visible itself, so stale answers
        # to hidden questions never unlock anything further down the chain.
        rule = self.rule_for(question)
        if rule is None:
            return True

        if isinstance(rule, LevelDependency):
            level = question.maturity_level
            if level is None or level <= 1:
                return True
            prerequisites = self.by_level.get((question.category_id, level - 1), [])
            return all(
                is_qualifying(q, response_value(self.responses, q.id)) and self.visible(q, visiting)
                for q in prerequisites
            )

        if isinstance(rule, ExplicitDependency):
            source = self.by_id.get(rule.depends_on)
            if source is None:
                logger.debug(
                    "Question %s depends on unknown question %s; showing it",
                    question.id,
                    rule.depends_on,
                )
                return True
            actual = response_value(self.responses, rule.depends_on)
            if actual is None:
                return False
            result = compare(rule.operator, actual, rule.value)
            if result is None:
                logger.debug("Rule on question %s cannot be evaluated; showing it", question.id)
                return True
            return result and self.visible(source, visiting)

        if isinstance(rule, MalformedRule):
            logger.debug("Malformed rule on question %s: %r", question.id, rule.raw)
        return True


def is_visible(question: Question, all_questions: Iterable[Question], responses) -> bool:
    """
    Decide whether `question` can currently be shown and answered.

    Uses the rule attached to the question itself. Level-1 questions and
    questions without a rule are always visible.

    Args:
        question: the question to check
        all_questions: the full question set the rule refers to
        responses: mapping of question id to `Response` (or ``{"value": ...}``)

    Returns:
        bool
    """
    return _Evaluator(all_questions, responses, _own_rule).visible(question)


def compute_progress(questions_in_scope, responses, all_questions=None) -> int:
    """
    Percentage (0-100) of in-scope questions that are visible and answered.

    Hidden questions count in the denominator but never in the numerator,
    whatever stale answer may still be recorded for them.

    :param questions_in_scope: a category or the whole questionnaire
    :param responses: mapping of question id to response
    :param all_questions: question set for rule lookups, defaults to the scope
    :return: integer percentage, 0 when the scope is empty
    """
    scope = list(questions_in_scope)
    if not scope:
        return 0
    universe = list(all_questions) if all_questions is not None else scope
    evaluator = _Evaluator(universe, responses, _own_rule)
    answered = sum(
        1
        for q in scope
        if evaluator.visible(q) and response_value(responses, q.id) is not None
    )
    return _round_half_up(100 * answered / len(scope))


def _round_half_up(x):
    return int(math.floor(x + 0.5))


# ----------- Engine -------------
class AssessmentEngine:
    """
    Visibility, progress and response bookkeeping for one questionnaire.

    Args:
        questions: ordered list of `Question` (or question dicts)
        gating: `EXPLICIT` to honour only explicit dependency rules, or
            `LEVEL` to also gate every question above maturity level 1
            behind the level below it
    """

    def __init__(self, questions, gating: str = EXPLICIT):
        if gating not in STRATEGIES:
            raise ValueError(f"Unknown visibility strategy: {gating}")
        self.gating = gating
        self.questions: List[Question] = [
            q if isinstance(q, Question) else Question.from_dict(q) for q in questions
        ]
        self._by_id: Dict[str, Question] = {q.id: q for q in self.questions}

    def __len__(self):
        return len(self.questions)

    def get(self, question_id) -> Optional[Question]:
        return self._by_id.get(question_id)

    def categories(self) -> List[str]:
        """Category ids in question order."""
        seen = []
        for q in self.questions:
            if q.category_id not in seen:
                seen.append(q.category_id)
        return seen

    def in_category(self, category_id=None) -> List[Question]:
        if category_id is None:
            return list(self.questions)
        return [q for q in self.questions if q.category_id == category_id]

    def rule_for(self, question: Question):
        rule = question.visibility_rule
        if rule is None and self.gating == LEVEL and (question.maturity_level or 1) > 1:
            return LevelDependency()
        return rule

    def is_visible(self, question, responses) -> bool:
        if isinstance(question, str):
            question = self._by_id.get(question)
            if question is None:
                return False
        return _Evaluator(self.questions, responses, self.rule_for).visible(question)

    def visibility_map(self, responses) -> Dict[str, bool]:
        """Visibility of every question, evaluated once for `responses`."""
        evaluator = _Evaluator(self.questions, responses, self.rule_for)
        return {q.id: evaluator.visible(q) for q in self.questions}

    def visible_questions(self, responses, category_id=None, shown=None) -> List[Question]:
        shown = shown if shown is not None else self.visibility_map(responses)
        return [q for q in self.in_category(category_id) if shown[q.id]]

    def progress(self, responses, category_id=None, shown=None) -> int:
        scope = self.in_category(category_id)
        if not scope:
            return 0
        shown = shown if shown is not None else self.visibility_map(responses)
        answered = sum(
            1 for q in scope if shown[q.id] and response_value(responses, q.id) is not None
        )
        return _round_half_up(100 * answered / len(scope))

    def category_progress(self, responses, shown=None) -> Dict[str, int]:
        shown = shown if shown is not None else self.visibility_map(responses)
        return {c: self.progress(responses, c, shown) for c in self.categories()}

    # ---- response store ----
    def dependents_of(self, question_id) -> List[str]:
        """Ids of questions whose explicit rule reads `question_id`, transitively."""
        found: List[str] = []
        frontier = [question_id]
        while frontier:
            current = frontier.pop()
            for q in self.questions:
                rule = q.visibility_rule
                if (
                    isinstance(rule, ExplicitDependency)
                    and rule.depends_on == current
                    and q.id not in found
                    and q.id != question_id
                ):
                    found.append(q.id)
                    frontier.append(q.id)
        return found

    def update_response(self, responses, question_id, value, evidence=None) -> Dict[str, Response]:
        """
        Record an answer and return the new response mapping.

        When the value changes, answers to every question that explicitly
        depends on this one (directly or through a chain) are cleared.
        Passing `evidence=None` keeps the previously attached files.
        """
        current = {qid: Response.from_dict(r) for qid, r in (responses or {}).items()}
        previous = current.get(question_id)
        if evidence is None:
            files = list(previous.evidence) if previous else []
        else:
            files = [f if isinstance(f, EvidenceFile) else EvidenceFile(str(f)) for f in evidence]
        current[question_id] = Response(value=value, evidence=files)

        old_value = previous.value if previous else None
        if not (old_value is value or strict_equals(old_value, value)):
            for dep in self.dependents_of(question_id):
                if current.pop(dep, None) is not None:
                    logger.debug("Cleared answer to %s after %s changed", dep, question_id)
        return current

    def attach_evidence(self, responses, question_id, files) -> Dict[str, Response]:
        """
        Add uploaded evidence to an answer, keeping the files attached before.

        A file with the same name as an attached one replaces it. The answer
        itself and its dependents are left alone.
        """
        previous = (responses or {}).get(question_id)
        previous = Response.from_dict(previous) if previous is not None else Response()
        new = [f if isinstance(f, EvidenceFile) else EvidenceFile(str(f)) for f in files]
        names = {f.name for f in new}
        kept = [f for f in previous.evidence if f.name not in names]
        return self.update_response(responses, question_id, previous.value, evidence=kept + new)

    def orphaned(self, responses) -> List[str]:
        """Answered question ids that are unknown or currently hidden."""
        shown = self.visibility_map(responses)
        out = []
        for qid in responses or {}:
            if not shown.get(qid, False):
                out.append(qid)
        return out

    def prune(self, responses) -> Dict[str, Response]:
        """Drop orphaned and empty answers before persisting."""
        orphans = set(self.orphaned(responses))
        kept = {}
        for qid, r in (responses or {}).items():
            r = Response.from_dict(r)
            if qid in orphans or (not r.answered and not r.evidence):
                continue
            kept[qid] = r
        return kept


def engine_for(assessment_type, questions=None, types: Optional[Mapping] = None) -> AssessmentEngine:
    """
    Build the engine for an assessment type using its configured strategy.

    :param assessment_type: key of `config.ASSESSMENT_TYPES`
    :param questions: override the configured question bank
    """
    types = types or config.ASSESSMENT_TYPES
    meta = types[assessment_type]
    qs = questions if questions is not None else config.QUESTIONS.get(assessment_type, [])
    return AssessmentEngine(qs, gating=meta["gating"])
