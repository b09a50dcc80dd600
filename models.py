# models.py

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

QUESTION_TYPES = ("boolean", "scale", "text", "date", "multi_choice")
OPERATORS = ("equals", "not_equals", "greater_than", "less_than")
ASSESSMENT_KINDS = ("resiliency", "gap", "maturity", "business_impact", "department")
STATUSES = ("in_progress", "completed", "archived")

DEFAULT_SCALE = {"min": 1, "max": 5, "step": 1}


def utcnow():
    return datetime.now(timezone.utc)


# ----------- Visibility rules -------------
@dataclass(frozen=True)
class LevelDependency:
    """Visible only when every question one maturity level lower qualifies."""

    kind = "level"


@dataclass(frozen=True)
class ExplicitDependency:
    """Visible only when another question's answer satisfies `operator`."""

    depends_on: str
    operator: str
    value: Any = None

    kind = "explicit"


@dataclass(frozen=True)
class MalformedRule:
    """
    A rule that could not be understood when loading question data.

    Kept on the question so the defect stays visible in logs, but it always
    evaluates as visible.
    """

    raw: Any = None

    kind = "malformed"


def rule_from_dict(raw):
    """
    Build a visibility rule from the data-store shape.

    Accepts ``{"dependsOn", "condition", "value"}`` (conditional logic),
    ``{"depends_on", "operator", "value"}`` or ``{"type": "level"}``.

    :param raw: dict, rule instance or None
    :return: a rule instance or None
    """
    if raw is None:
        return None
    if isinstance(raw, (LevelDependency, ExplicitDependency, MalformedRule)):
        return raw
    if not isinstance(raw, dict):
        return MalformedRule(raw)
    if raw.get("type") == "level":
        return LevelDependency()
    depends_on = raw.get("dependsOn", raw.get("depends_on"))
    operator = raw.get("condition", raw.get("operator"))
    if not depends_on or operator not in OPERATORS:
        return MalformedRule(raw)
    return ExplicitDependency(str(depends_on), operator, raw.get("value"))


def _number(v, kind, default):
    """`kind(v)`, or `default` when v is missing or not a number (reported by config checks)."""
    if v is None or isinstance(v, bool):
        return default
    try:
        return kind(v)
    except (TypeError, ValueError):
        return default


# ----------- Questions -------------
@dataclass(frozen=True)
class EvidenceRequirements:
    required_files: List[str] = field(default_factory=list)
    max_size_mb: Optional[float] = None
    min_files: int = 0
    max_files: Optional[int] = None
    naming_convention: str = ""

    @classmethod
    def from_dict(cls, raw):
        if not raw:
            return None
        return cls(
            required_files=list(raw.get("required_files", []) or []),
            max_size_mb=raw.get("max_size_mb"),
            min_files=int(raw.get("min_files", 0) or 0),
            max_files=raw.get("max_files"),
            naming_convention=raw.get("naming_convention", "") or "",
        )


@dataclass(frozen=True)
class StandardReference:
    name: str
    clause: str = ""
    description: str = ""


@dataclass(frozen=True)
class Question:
    id: str
    category_id: str
    text: str
    type: str = "boolean"
    options: Dict[str, Any] = field(default_factory=dict)
    weight: float = 1.0
    maturity_level: Optional[int] = None
    visibility_rule: Any = None
    description: str = ""
    evidence_required: bool = False
    evidence_description: str = ""
    evidence_requirements: Optional[EvidenceRequirements] = None
    standard_reference: Optional[StandardReference] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Question":
        """
        Build a question from a config / data-store record.

        Both ``text`` and the store's ``question`` column are accepted, and
        ``conditional_logic`` is read as an explicit dependency rule.
        """
        rule = raw.get("visibility_rule", raw.get("conditional_logic"))
        ref = raw.get("standard_reference")
        level = raw.get("maturity_level")
        return cls(
            id=str(raw["id"]),
            category_id=str(raw.get("category_id", raw.get("category", ""))),
            text=raw.get("text", raw.get("question", "")),
            type=raw.get("type", "boolean"),
            options=dict(raw.get("options") or {}),
            weight=_number(raw.get("weight", 1.0), float, 1.0),
            maturity_level=_number(level, int, None),
            visibility_rule=rule_from_dict(rule),
            description=raw.get("description", "") or "",
            evidence_required=bool(raw.get("evidence_required", False)),
            evidence_description=raw.get("evidence_description", "") or "",
            evidence_requirements=EvidenceRequirements.from_dict(
                raw.get("evidence_requirements")
            ),
            standard_reference=StandardReference(**ref) if ref else None,
        )

    @property
    def option_list(self) -> List[Any]:
        """Ordered multi_choice options, worst first and best last."""
        opts = self.options.get("options", []) if self.options else []
        return list(opts) if isinstance(opts, (list, tuple)) else []

    @property
    def scale_bounds(self):
        lo = self.options.get("min", DEFAULT_SCALE["min"])
        hi = self.options.get("max", DEFAULT_SCALE["max"])
        return lo, hi


# ----------- Responses -------------
@dataclass(frozen=True)
class EvidenceFile:
    """Opaque reference to an uploaded evidence file. Content is never read."""

    name: str
    size_bytes: Optional[int] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class Response:
    value: Any = None
    evidence: List[EvidenceFile] = field(default_factory=list)

    @property
    def answered(self) -> bool:
        return self.value is not None

    def evidence_names(self) -> List[str]:
        return [f.name for f in self.evidence]

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "evidence": self.evidence_names()}

    @classmethod
    def from_dict(cls, raw) -> "Response":
        if isinstance(raw, Response):
            return raw
        if not isinstance(raw, dict):
            return cls(value=raw)
        files = []
        for f in raw.get("evidence") or []:
            if isinstance(f, EvidenceFile):
                files.append(f)
            elif isinstance(f, dict):
                files.append(
                    EvidenceFile(f.get("name", ""), f.get("size_bytes"), f.get("content_type"))
                )
            else:
                files.append(EvidenceFile(str(f)))
        return cls(value=raw.get("value"), evidence=files)


def responses_from_records(raw) -> Dict[str, Response]:
    """Convert a JSON mapping ``{question_id: {"value", "evidence"}}`` to Responses."""
    return {str(qid): Response.from_dict(r) for qid, r in (raw or {}).items()}


def responses_to_records(responses) -> Dict[str, Dict[str, Any]]:
    return {qid: Response.from_dict(r).to_dict() for qid, r in (responses or {}).items()}


# ----------- Assessments & plans -------------
@dataclass
class Assessment:
    id: str
    organization_id: str
    type: str
    status: str = "in_progress"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    next_review_date: Optional[datetime] = None
    current_category_id: Optional[str] = None
    revision: int = 0

    def to_dict(self) -> Dict[str, Any]:
        def _iso(d):
            return d.isoformat() if d else None

        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "type": self.type,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
            "next_review_date": _iso(self.next_review_date),
            "current_category_id": self.current_category_id,
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Assessment":
        def _dt(v):
            return datetime.fromisoformat(v) if v else None

        return cls(
            id=raw["id"],
            organization_id=raw["organization_id"],
            type=raw["type"],
            status=raw.get("status", "in_progress"),
            created_at=_dt(raw.get("created_at")) or utcnow(),
            updated_at=_dt(raw.get("updated_at")),
            completed_at=_dt(raw.get("completed_at")),
            next_review_date=_dt(raw.get("next_review_date")),
            current_category_id=raw.get("current_category_id"),
            revision=int(raw.get("revision", 0)),
        )


@dataclass(frozen=True)
class PlanTemplate:
    plan_type: str
    title: str
    title_template: str
    body_template: str
