# validation.py

from typing import Dict, List

from models import Question, Response
from visibility import AssessmentEngine

MB = 1024 * 1024


def validate_response(question: Question, response) -> List[str]:
    """
    Inline form checks for one answer.

    Checks the evidence attachments against the question's requirements.
    Returns messages instead of raising so the form can show all of them.

    Args:
        question: the question being answered
        response: `Response`, ``{"value", "evidence"}`` dict, or None

    Returns:
        list[str]: validation messages, empty when the answer is acceptable
    """
    r = Response.from_dict(response) if response is not None else Response()
    errors = []
    files = r.evidence
    req = question.evidence_requirements

    if question.evidence_required and not files:
        errors.append("Evidence is required for this question.")
    if req is not None and files:
        if req.min_files and len(files) < req.min_files:
            errors.append(f"At least {req.min_files} evidence file(s) required.")
        if req.max_files is not None and len(files) > req.max_files:
            errors.append(f"No more than {req.max_files} evidence file(s) allowed.")
        if req.max_size_mb is not None:
            for f in files:
                if f.size_bytes is not None and f.size_bytes > req.max_size_mb * MB:
                    errors.append(f"{f.name} exceeds {req.max_size_mb} MB.")
    return errors


def validate_assessment(
    engine: AssessmentEngine, responses, require_complete: bool = False
) -> Dict[str, List[str]]:
    """
    Validate every visible question of a questionnaire.

    Hidden questions are skipped. Evidence is only checked once a question
    has been answered, unless `require_complete` is set, in which case an
    unanswered visible question is an error too.

    :return: mapping of question id to its messages (only failing questions)
    """
    problems = {}
    for q in engine.visible_questions(responses):
        r = (responses or {}).get(q.id)
        r = Response.from_dict(r) if r is not None else Response()
        msgs = []
        if not r.answered:
            if require_complete:
                msgs.append("An answer is required.")
            else:
                continue
        msgs.extend(validate_response(q, r))
        if msgs:
            problems[q.id] = msgs
    return problems
