# errors.py

from typing import Any, Optional


class BCDRError(Exception):
    """
    Base class for all errors raised by the assessment toolkit.

    Args:
        message: human readable description
        details: optional extra context (ids, original error text)
    """

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ---------- Persistence ----------
class PersistenceError(BCDRError):
    """Raised when the assessment store cannot load or save data."""


class AssessmentNotFoundError(PersistenceError):
    def __init__(self, assessment_id: str):
        self.assessment_id = assessment_id
        super().__init__(f"Assessment not found: {assessment_id}")


class StaleRevisionError(PersistenceError):
    """
    Raised when a save was prepared against an older revision of the
    assessment than the one currently stored.
    """

    def __init__(self, assessment_id: str, expected: int, actual: int):
        self.assessment_id = assessment_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Assessment {assessment_id} was modified elsewhere",
            details=f"expected revision {expected}, stored revision {actual}",
        )


class AssessmentConflictError(PersistenceError):
    """Raised when a state transition would break the one-active-record rule."""


# ---------- Plan generation ----------
class UnknownPlanTypeError(BCDRError, KeyError):
    def __init__(self, plan_type: str):
        self.plan_type = plan_type
        BCDRError.__init__(self, f"No template found for plan type: {plan_type}")

    def __str__(self) -> str:
        return self.message
