# --- Configuration --------------------------------------------------------------------------------

import logging
import os

from models import QUESTION_TYPES, ExplicitDependency, MalformedRule, rule_from_dict

# Runtime settings (environment) -------------------------------------------------------------------

STORE_PATH = os.environ.get("BCDR_STORE_PATH", "bcdr_store.json")
LOG_LEVEL = os.environ.get("BCDR_LOG_LEVEL", "INFO").upper()
REVIEW_INTERVAL_DAYS = int(os.environ.get("BCDR_REVIEW_INTERVAL_DAYS", "90"))
DEBUG = os.environ.get("BCDR_DEBUG", "").lower() in ("1", "true", "yes")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level=None) -> None:
    """
    Configure the root logger once with a single stream handler.

    :param level: overrides BCDR_LOG_LEVEL when given
    """
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level or LOG_LEVEL)


# Question banks -----------------------------------------------------------------------------------

SCALE = [
    {"label": "1 • Not in place", "value": 1},
    {"label": "2 • Initial", "value": 2},
    {"label": "3 • Defined", "value": 3},
    {"label": "4 • Managed", "value": 4},
    {"label": "5 • Optimized", "value": 5},
]

BOOLEAN = [{"label": "Yes", "value": True}, {"label": "No", "value": False}]

# gating: "explicit" honours conditional_logic only; "level" also hides a
# question until the maturity level below it is answered positively.
ASSESSMENT_TYPES = {
    "resiliency": {"label": "Resiliency Scoring", "gating": "explicit"},
    "gap": {"label": "Gap Analysis", "gating": "explicit"},
    "maturity": {"label": "Maturity Assessment", "gating": "level"},
    "department": {"label": "Department Assessment", "gating": "level"},
}

COMPLETION_MESSAGES = {
    "resiliency": "Resiliency assessment completed successfully!",
    "gap": "Gap analysis completed successfully!",
    "maturity": "Maturity assessment completed successfully!",
    "department": "Department assessment completed successfully!",
}

CATEGORIES = {
    "resiliency": [
        {"id": "res-gov", "name": "Leadership and Governance", "weight": 1.2},
        {"id": "res-risk", "name": "Risk Management", "weight": 1.0},
        {"id": "res-bia", "name": "Business Impact Analysis", "weight": 1.1},
        {"id": "res-ir", "name": "Incident Response", "weight": 1.2},
        {"id": "res-rs", "name": "Recovery Strategy", "weight": 1.3},
        {"id": "res-ex", "name": "Exercise Program", "weight": 1.0},
    ],
    "gap": [
        {"id": "gap-policy", "name": "Policy and Governance", "weight": 1.0},
        {"id": "gap-recovery", "name": "Recovery Capabilities", "weight": 1.3},
        {"id": "gap-tech", "name": "Technology Resilience", "weight": 1.2},
        {"id": "gap-vendor", "name": "Third-Party Risk", "weight": 1.0},
    ],
    "maturity": [
        {"id": "mat-gov", "name": "Program Governance", "weight": 1.0},
        {"id": "mat-plan", "name": "Continuity Planning", "weight": 1.2},
        {"id": "mat-test", "name": "Testing and Improvement", "weight": 1.1},
    ],
    "department": [
        {"id": "dep-proc", "name": "Critical Processes", "weight": 1.2},
        {"id": "dep-people", "name": "People and Roles", "weight": 1.0},
    ],
}

_EVIDENCE_POLICY = {
    "required_files": ["policy"],
    "max_size_mb": 10,
    "min_files": 1,
    "max_files": 5,
    "naming_convention": "ORG_Policy_YYYYMMDD.pdf",
}

QUESTIONS = {
    "resiliency": [
        # Leadership and Governance
        {
            "id": "res-gov-1",
            "category_id": "res-gov",
            "text": "Is there a formal BCDR steering committee?",
            "type": "boolean",
            "weight": 1.5,
            "standard_reference": {"name": "ISO 22301:2019", "clause": "5.3"},
        },
        {
            "id": "res-gov-2",
            "category_id": "res-gov",
            "text": "How often does the steering committee meet?",
            "type": "multi_choice",
            "options": {"options": ["Ad hoc", "Annually", "Quarterly", "Monthly"]},
            "weight": 1.0,
            "conditional_logic": {"dependsOn": "res-gov-1", "condition": "equals", "value": True},
        },
        {
            "id": "res-gov-3",
            "category_id": "res-gov",
            "text": "Is there a documented BCDR policy?",
            "type": "boolean",
            "weight": 1.4,
            "evidence_required": True,
            "evidence_description": "Current signed BCDR policy document.",
            "evidence_requirements": _EVIDENCE_POLICY,
        },
        {
            "id": "res-gov-4",
            "category_id": "res-gov",
            "text": "How often is the BCDR policy reviewed?",
            "type": "multi_choice",
            "options": {"options": ["Never", "Every 2+ years", "Annually", "Semi-annually"]},
            "weight": 1.0,
            "conditional_logic": {"dependsOn": "res-gov-3", "condition": "equals", "value": True},
        },
        # Risk Management
        {
            "id": "res-risk-1",
            "category_id": "res-risk",
            "text": "Rate the maturity of your BCDR risk assessment process.",
            "type": "scale",
            "options": {"min": 1, "max": 5, "step": 1},
            "weight": 1.3,
        },
        {
            "id": "res-risk-2",
            "category_id": "res-risk",
            "text": "Describe how identified risks are tracked to closure.",
            "type": "text",
            "weight": 0.8,
            "conditional_logic": {"dependsOn": "res-risk-1", "condition": "greater_than", "value": 2},
        },
        {
            "id": "res-risk-3",
            "category_id": "res-risk",
            "text": "When was the last formal risk assessment completed?",
            "type": "date",
            "weight": 0.5,
        },
        # Business Impact Analysis
        {
            "id": "res-bia-1",
            "category_id": "res-bia",
            "text": "Has a business impact analysis been performed?",
            "type": "boolean",
            "weight": 1.5,
            "evidence_required": True,
            "evidence_description": "Most recent BIA report.",
        },
        {
            "id": "res-bia-2",
            "category_id": "res-bia",
            "text": "Are RTO and RPO targets defined for all critical functions?",
            "type": "scale",
            "weight": 1.3,
            "conditional_logic": {"dependsOn": "res-bia-1", "condition": "equals", "value": True},
        },
        # Incident Response
        {
            "id": "res-ir-1",
            "category_id": "res-ir",
            "text": "Is there a documented incident response plan?",
            "type": "boolean",
            "weight": 1.5,
        },
        {
            "id": "res-ir-2",
            "category_id": "res-ir",
            "text": "How effective is the escalation and notification process?",
            "type": "scale",
            "weight": 1.2,
            "conditional_logic": {"dependsOn": "res-ir-1", "condition": "equals", "value": True},
        },
        {
            "id": "res-ir-3",
            "category_id": "res-ir",
            "text": "Which gaps were found in the last incident review?",
            "type": "text",
            "weight": 0.6,
            "conditional_logic": {"dependsOn": "res-ir-2", "condition": "less_than", "value": 3},
        },
        # Recovery Strategy
        {
            "id": "res-rs-1",
            "category_id": "res-rs",
            "text": "Are recovery strategies documented?",
            "type": "boolean",
            "weight": 1.4,
        },
        {
            "id": "res-rs-2",
            "category_id": "res-rs",
            "text": "Which alternate site arrangement is in place?",
            "type": "multi_choice",
            "options": {"options": ["None", "Cold site", "Warm site", "Hot site / active-active"]},
            "weight": 1.3,
            "conditional_logic": {"dependsOn": "res-rs-1", "condition": "equals", "value": True},
        },
        # Exercise Program
        {
            "id": "res-ex-1",
            "category_id": "res-ex",
            "text": "How many BCDR exercises were run in the last 12 months?",
            "type": "scale",
            "options": {"min": 0, "max": 6, "step": 1, "labels": ["0", "6+"]},
            "weight": 1.2,
        },
        {
            "id": "res-ex-2",
            "category_id": "res-ex",
            "text": "Are lessons learned from exercises tracked to completion?",
            "type": "boolean",
            "weight": 1.0,
            "conditional_logic": {"dependsOn": "res-ex-1", "condition": "greater_than", "value": 0},
        },
    ],
    "gap": [
        {
            "id": "gap-policy-1",
            "category_id": "gap-policy",
            "text": "Does the BCDR policy align with ISO 22301 requirements?",
            "type": "scale",
            "weight": 1.2,
            "standard_reference": {"name": "ISO 22301:2019", "clause": "5.2"},
        },
        {
            "id": "gap-policy-2",
            "category_id": "gap-policy",
            "text": "List the policy clauses that are missing or outdated.",
            "type": "text",
            "weight": 0.6,
            "conditional_logic": {"dependsOn": "gap-policy-1", "condition": "less_than", "value": 4},
        },
        {
            "id": "gap-recovery-1",
            "category_id": "gap-recovery",
            "text": "Can critical systems be recovered within their RTO?",
            "type": "boolean",
            "weight": 1.5,
            "evidence_required": True,
            "evidence_description": "Latest recovery test report.",
            "evidence_requirements": {"min_files": 1, "max_files": 3, "max_size_mb": 20},
        },
        {
            "id": "gap-recovery-2",
            "category_id": "gap-recovery",
            "text": "What is the largest RTO shortfall observed (hours)?",
            "type": "scale",
            "options": {"min": 0, "max": 48, "step": 4},
            "weight": 1.0,
            "conditional_logic": {"dependsOn": "gap-recovery-1", "condition": "not_equals", "value": True},
        },
        {
            "id": "gap-tech-1",
            "category_id": "gap-tech",
            "text": "How are backups protected?",
            "type": "multi_choice",
            "options": {"options": ["Not protected", "Offsite copy", "Immutable copy", "Immutable and air-gapped"]},
            "weight": 1.4,
        },
        {
            "id": "gap-tech-2",
            "category_id": "gap-tech",
            "text": "Rate the coverage of infrastructure redundancy.",
            "type": "scale",
            "weight": 1.1,
        },
        {
            "id": "gap-vendor-1",
            "category_id": "gap-vendor",
            "text": "Are critical suppliers required to maintain continuity plans?",
            "type": "boolean",
            "weight": 1.2,
        },
        {
            "id": "gap-vendor-2",
            "category_id": "gap-vendor",
            "text": "When were supplier continuity plans last reviewed?",
            "type": "date",
            "weight": 0.6,
            "conditional_logic": {"dependsOn": "gap-vendor-1", "condition": "equals", "value": True},
        },
    ],
    "maturity": [
        # Program Governance
        {
            "id": "mat-gov-1a",
            "category_id": "mat-gov",
            "text": "Is a BCDR program owner formally appointed?",
            "type": "boolean",
            "maturity_level": 1,
        },
        {
            "id": "mat-gov-1b",
            "category_id": "mat-gov",
            "text": "Is BCDR program scope documented?",
            "type": "boolean",
            "maturity_level": 1,
        },
        {
            "id": "mat-gov-2",
            "category_id": "mat-gov",
            "text": "How consistently are program objectives reported to leadership?",
            "type": "scale",
            "maturity_level": 2,
            "weight": 1.2,
        },
        {
            "id": "mat-gov-3",
            "category_id": "mat-gov",
            "text": "How are program metrics used?",
            "type": "multi_choice",
            "options": {"options": ["Not used", "Reported", "Drive decisions"]},
            "maturity_level": 3,
            "weight": 1.4,
        },
        # Continuity Planning
        {
            "id": "mat-plan-1",
            "category_id": "mat-plan",
            "text": "Do documented continuity plans exist for critical functions?",
            "type": "boolean",
            "maturity_level": 1,
        },
        {
            "id": "mat-plan-2",
            "category_id": "mat-plan",
            "text": "How well are plans kept current after organisational change?",
            "type": "scale",
            "maturity_level": 2,
            "weight": 1.2,
        },
        {
            "id": "mat-plan-3",
            "category_id": "mat-plan",
            "text": "Are plans integrated with IT disaster recovery runbooks?",
            "type": "boolean",
            "maturity_level": 3,
            "weight": 1.4,
        },
        # Testing and Improvement
        {
            "id": "mat-test-1",
            "category_id": "mat-test",
            "text": "Which exercise types are run?",
            "type": "multi_choice",
            "options": {"options": ["None", "Tabletop", "Tabletop and technical", "Full-scale simulation"]},
            "maturity_level": 1,
        },
        {
            "id": "mat-test-2",
            "category_id": "mat-test",
            "text": "Rate how exercise findings feed back into the plans.",
            "type": "scale",
            "maturity_level": 2,
            "weight": 1.3,
        },
    ],
    "department": [
        {
            "id": "dep-proc-1",
            "category_id": "dep-proc",
            "text": "Has the department identified its critical processes?",
            "type": "boolean",
            "maturity_level": 1,
        },
        {
            "id": "dep-proc-2",
            "category_id": "dep-proc",
            "text": "Rate the documentation of manual workarounds for those processes.",
            "type": "scale",
            "maturity_level": 2,
        },
        {
            "id": "dep-people-1",
            "category_id": "dep-people",
            "text": "Are backup staff named for every critical role?",
            "type": "boolean",
            "maturity_level": 1,
        },
        {
            "id": "dep-people-2",
            "category_id": "dep-people",
            "text": "How often is cross-training performed?",
            "type": "multi_choice",
            "options": {"options": ["Never", "Annually", "Quarterly"]},
            "maturity_level": 2,
        },
    ],
}

# Recommended actions per category, keyed by the lowest maturity level (1-5)
# at which they apply.
RECS = {
    "res-gov": {
        1: ["Charter a BCDR steering committee with an executive sponsor."],
        3: ["Review the BCDR policy annually and track decisions in a log."],
        5: ["Tie BCDR objectives to executive scorecards."],
    },
    "res-risk": {
        1: ["Run a baseline BCDR risk assessment across all sites."],
        3: ["Track risk treatments to closure with named owners."],
        5: ["Automate risk indicators from monitoring data."],
    },
    "res-bia": {
        1: ["Complete a business impact analysis for critical functions."],
        3: ["Validate RTO/RPO targets with function owners."],
        5: ["Refresh the BIA after every major change."],
    },
    "res-ir": {
        1: ["Document an incident response plan with escalation paths."],
        3: ["Test notification trees quarterly."],
        5: ["Run post-incident reviews with tracked improvements."],
    },
    "res-rs": {
        1: ["Document recovery strategies for each critical function."],
        3: ["Contract a warm or hot alternate site for critical systems."],
        5: ["Move critical services to active-active deployment."],
    },
    "res-ex": {
        1: ["Schedule at least one tabletop exercise per year."],
        3: ["Add technical recovery tests to the exercise calendar."],
        5: ["Run unannounced full-scale simulations."],
    },
    "gap-policy": {
        1: ["Map the BCDR policy against ISO 22301 clauses."],
        3: ["Close outstanding policy gaps and re-approve."],
        5: ["Benchmark the policy against peer organisations."],
    },
    "gap-recovery": {
        1: ["Measure actual recovery times against RTO targets."],
        3: ["Prioritise remediation of the largest RTO shortfalls."],
        5: ["Continuously validate recovery with automated failover tests."],
    },
    "gap-tech": {
        1: ["Keep an offsite copy of all critical backups."],
        3: ["Make backups immutable and test restores monthly."],
        5: ["Air-gap backups and eliminate single points of failure."],
    },
    "gap-vendor": {
        1: ["Require continuity plans from critical suppliers."],
        3: ["Review supplier plans annually."],
        5: ["Include critical suppliers in joint exercises."],
    },
    "mat-gov": {
        1: ["Appoint a BCDR program owner and document scope."],
        3: ["Report program metrics to leadership each quarter."],
        5: ["Use program metrics to drive investment decisions."],
    },
    "mat-plan": {
        1: ["Write continuity plans for every critical function."],
        3: ["Trigger plan reviews from the change-management process."],
        5: ["Integrate plans with IT recovery runbooks."],
    },
    "mat-test": {
        1: ["Start with a tabletop exercise for the top scenario."],
        3: ["Feed exercise findings into plan updates."],
        5: ["Run full-scale simulations annually."],
    },
    "dep-proc": {
        1: ["List the department's critical processes and owners."],
        3: ["Document manual workarounds for each critical process."],
        5: ["Exercise workarounds with the department each year."],
    },
    "dep-people": {
        1: ["Name backup staff for every critical role."],
        3: ["Cross-train backup staff quarterly."],
        5: ["Rotate staff through critical roles regularly."],
    },
}


def category_name(category_id: str) -> str:
    for cats in CATEGORIES.values():
        for c in cats:
            if c["id"] == category_id:
                return c["name"]
    return category_id


def validate_question_bank(questions, categories=None):
    """
    Check the sanity of a question bank.

    Reports unknown categories, unknown types, weights that are negative or
    not numbers, visibility rules that cannot be understood, and rules
    pointing at questions that do not exist in the bank. Never raises: the
    engine shows a question whose rule is broken, so a broken rule is a
    warning here too.

    :param questions: list of question dicts
    :param categories: list of category dicts the questions may use
    :return: list of warning strings (empty when the bank is clean)
    """
    warnings = []
    ids = {q.get("id") for q in questions}
    cat_ids = {c["id"] for c in categories} if categories is not None else None
    for q in questions:
        qid = q.get("id")
        if qid is None:
            warnings.append(f"question without an id: {q.get('text', '')!r}")
            continue
        if cat_ids is not None and q.get("category_id") not in cat_ids:
            warnings.append(f"{qid}: unknown category {q.get('category_id')!r}")
        if q.get("type", "boolean") not in QUESTION_TYPES:
            warnings.append(f"{qid}: unknown type {q.get('type')!r}")
        weight = q.get("weight", 1.0)
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            warnings.append(f"{qid}: weight {weight!r} is not a number")
        elif weight < 0:
            warnings.append(f"{qid}: negative weight")
        rule = rule_from_dict(q.get("visibility_rule", q.get("conditional_logic")))
        if isinstance(rule, MalformedRule):
            warnings.append(f"{qid}: visibility rule cannot be understood: {rule.raw!r}")
        elif isinstance(rule, ExplicitDependency) and rule.depends_on not in ids:
            warnings.append(f"{qid}: depends on unknown question {rule.depends_on!r}")
    return warnings
