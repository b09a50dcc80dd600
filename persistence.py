# persistence.py
"""
Assessment persistence.

`AssessmentStore` is the adapter the rest of the application talks to; the
real backing service is an external data store. Two implementations ship
here: an in-memory store (tests, demos) and a JSON-file store used by the
Dash app. `AssessmentSession` wraps a store for one organisation and
assessment type and turns store failures into user-facing messages.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import timedelta
from typing import Dict, List, Optional

import config
from errors import (
    AssessmentConflictError,
    AssessmentNotFoundError,
    PersistenceError,
    StaleRevisionError,
)
from models import (
    ASSESSMENT_KINDS,
    Assessment,
    Response,
    responses_from_records,
    responses_to_records,
    utcnow,
)
from notifier import LoggingNotifier, Notifier
from validation import validate_assessment
from visibility import AssessmentEngine

logger = logging.getLogger(__name__)


class AssessmentStore:
    """Interface of the assessment data store."""

    def create_assessment(self, organization_id, assessment_type, current_category_id=None) -> Assessment:
        raise NotImplementedError

    def get(self, assessment_id) -> Assessment:
        raise NotImplementedError

    def list_assessments(self, organization_id=None, assessment_type=None, status=None) -> List[Assessment]:
        raise NotImplementedError

    def load_in_progress(self, organization_id, assessment_type) -> Optional[Assessment]:
        raise NotImplementedError

    def latest_completed(self, organization_id, assessment_type) -> Optional[Assessment]:
        raise NotImplementedError

    def load_responses(self, assessment_id) -> Dict[str, Response]:
        raise NotImplementedError

    def save_responses(
        self, assessment_id, responses, current_category_id=None, expected_revision=None
    ) -> Assessment:
        raise NotImplementedError

    def complete_assessment(self, organization_id, assessment_type, responses) -> Assessment:
        raise NotImplementedError

    def archive_assessment(self, assessment_id) -> Assessment:
        raise NotImplementedError


class InMemoryAssessmentStore(AssessmentStore):
    """
    Thread-safe store kept in process memory.

    Enforces the lifecycle rules: at most one in_progress and one completed
    assessment per (organisation, type), and a revision counter that rejects
    saves prepared against an older revision. A change whose write fails is
    rolled back, so memory never runs ahead of what was persisted.
    """

    def __init__(self, review_interval_days: int = None):
        self.review_interval_days = (
            config.REVIEW_INTERVAL_DAYS if review_interval_days is None else review_interval_days
        )
        self._lock = threading.RLock()
        self._assessments: Dict[str, Assessment] = {}
        self._responses: Dict[str, Dict[str, Response]] = {}

    # hook for subclasses that write through to disk
    def _persist(self) -> None:
        pass

    @contextmanager
    def _transaction(self):
        """Run a change and persist it, restoring the previous state if anything fails."""
        with self._lock:
            assessments = {aid: replace(a) for aid, a in self._assessments.items()}
            responses = dict(self._responses)
            try:
                yield
                self._persist()
            except Exception:
                self._assessments = assessments
                self._responses = responses
                raise

    def _find(self, organization_id, assessment_type, status) -> List[Assessment]:
        found = [
            a
            for a in self._assessments.values()
            if a.organization_id == organization_id
            and a.type == assessment_type
            and a.status == status
        ]
        return sorted(found, key=lambda a: a.created_at, reverse=True)

    def _add(self, organization_id, assessment_type, current_category_id=None):
        if self._find(organization_id, assessment_type, "in_progress"):
            raise AssessmentConflictError(
                f"An in-progress {assessment_type} assessment already exists",
                details=organization_id,
            )
        a = Assessment(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            type=assessment_type,
            current_category_id=current_category_id,
        )
        self._assessments[a.id] = a
        self._responses[a.id] = {}
        return a

    def create_assessment(self, organization_id, assessment_type, current_category_id=None):
        if assessment_type not in ASSESSMENT_KINDS:
            raise PersistenceError(f"Unknown assessment type: {assessment_type}")
        with self._transaction():
            a = self._add(organization_id, assessment_type, current_category_id)
        logger.info("Created %s assessment %s for %s", assessment_type, a.id, organization_id)
        return replace(a)

    def _get(self, assessment_id):
        try:
            return self._assessments[assessment_id]
        except KeyError:
            raise AssessmentNotFoundError(assessment_id) from None

    def get(self, assessment_id):
        # callers get copies so their revision stays what they last saw
        with self._lock:
            return replace(self._get(assessment_id))

    def list_assessments(self, organization_id=None, assessment_type=None, status=None):
        with self._lock:
            return [
                replace(a)
                for a in sorted(self._assessments.values(), key=lambda a: a.created_at)
                if (organization_id is None or a.organization_id == organization_id)
                and (assessment_type is None or a.type == assessment_type)
                and (status is None or a.status == status)
            ]

    def load_in_progress(self, organization_id, assessment_type):
        with self._lock:
            found = self._find(organization_id, assessment_type, "in_progress")
            return replace(found[0]) if found else None

    def latest_completed(self, organization_id, assessment_type):
        with self._lock:
            found = self._find(organization_id, assessment_type, "completed")
            return replace(found[0]) if found else None

    def load_responses(self, assessment_id):
        with self._lock:
            self._get(assessment_id)
            return dict(self._responses.get(assessment_id, {}))

    def save_responses(self, assessment_id, responses, current_category_id=None, expected_revision=None):
        with self._transaction():
            a = self._get(assessment_id)
            if a.status != "in_progress":
                raise AssessmentConflictError(
                    f"Assessment {assessment_id} is {a.status} and can no longer be edited"
                )
            if expected_revision is not None and expected_revision != a.revision:
                raise StaleRevisionError(assessment_id, expected_revision, a.revision)
            self._responses[assessment_id] = {
                qid: Response.from_dict(r) for qid, r in (responses or {}).items()
            }
            a.current_category_id = current_category_id
            a.updated_at = utcnow()
            a.revision += 1
            saved = replace(a)
        logger.debug("Saved %d responses to %s (rev %d)", len(responses or {}), a.id, a.revision)
        return saved

    def complete_assessment(self, organization_id, assessment_type, responses):
        if assessment_type not in ASSESSMENT_KINDS:
            raise PersistenceError(f"Unknown assessment type: {assessment_type}")
        with self._transaction():
            if self._find(organization_id, assessment_type, "completed"):
                raise AssessmentConflictError(
                    f"A completed {assessment_type} assessment already exists; archive it first",
                    details=organization_id,
                )
            found = self._find(organization_id, assessment_type, "in_progress")
            a = found[0] if found else self._add(organization_id, assessment_type)
            now = utcnow()
            self._responses[a.id] = {
                qid: Response.from_dict(r) for qid, r in (responses or {}).items()
            }
            a.status = "completed"
            a.completed_at = now
            a.updated_at = now
            a.next_review_date = now + timedelta(days=self.review_interval_days)
            a.revision += 1
            done = replace(a)
        logger.info("Completed %s assessment %s for %s", assessment_type, a.id, organization_id)
        return done

    def archive_assessment(self, assessment_id):
        with self._lock:
            a = self._get(assessment_id)
            if a.status == "archived":
                return replace(a)
        with self._transaction():
            a = self._get(assessment_id)
            a.status = "archived"
            a.updated_at = utcnow()
            a.revision += 1
            archived = replace(a)
        logger.info("Archived assessment %s", assessment_id)
        return archived


class JsonFileAssessmentStore(InMemoryAssessmentStore):
    """
    In-memory store written through to a JSON document after every change.

    :param path: file to load from (if it exists) and write to
    """

    def __init__(self, path=None, review_interval_days: int = None):
        super().__init__(review_interval_days)
        self.path = path or config.STORE_PATH
        self._load()

    def _load(self):
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, encoding="utf-8") as fh:
                doc = json.load(fh)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read assessment store {self.path}", details=str(e)) from e
        for raw in doc.get("assessments", []):
            a = Assessment.from_dict(raw)
            self._assessments[a.id] = a
        for aid, records in doc.get("responses", {}).items():
            self._responses[aid] = responses_from_records(records)

    def _persist(self):
        doc = {
            "assessments": [a.to_dict() for a in self._assessments.values()],
            "responses": {aid: responses_to_records(r) for aid, r in self._responses.items()},
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, indent=2, default=str)
            os.replace(tmp, self.path)
        except OSError as e:
            if tmp is not None and os.path.exists(tmp):
                os.remove(tmp)
            raise PersistenceError(f"Cannot write assessment store {self.path}", details=str(e)) from e


class AssessmentSession:
    """
    Load/save/complete workflow for one organisation and assessment type.

    Store failures never escape: they are logged, kept in `error` for the
    UI banner, and reported through the notifier. Responses to hidden
    questions are pruned before anything is written.

    Args:
        store: an `AssessmentStore`
        engine: the `AssessmentEngine` of this assessment type
        organization_id: owning organisation
        assessment_type: one of `models.ASSESSMENT_KINDS`
        notifier: receives success / error messages
    """

    def __init__(
        self,
        store: AssessmentStore,
        engine: AssessmentEngine,
        organization_id: str,
        assessment_type: str,
        notifier: Notifier = None,
    ):
        self.store = store
        self.engine = engine
        self.organization_id = organization_id
        self.assessment_type = assessment_type
        self.notifier = notifier or LoggingNotifier()
        self.assessment: Optional[Assessment] = None
        self.error: Optional[str] = None
        self.validation: Dict[str, List[str]] = {}

    def _fail(self, action, exc):
        logger.exception("Error %s %s assessment for %s", action, self.assessment_type, self.organization_id)
        self.error = str(exc)

    def load(self) -> Dict[str, Response]:
        """Resume the in-progress assessment, returning its responses ({} if none)."""
        self.error = None
        try:
            self.assessment = self.store.load_in_progress(self.organization_id, self.assessment_type)
            if self.assessment is None:
                return {}
            return self.store.load_responses(self.assessment.id)
        except PersistenceError as e:
            self._fail("loading", e)
            self.notifier.error("Failed to load progress")
            return {}

    def has_completed(self) -> bool:
        return self.completed_assessment() is not None

    def completed_assessment(self) -> Optional[Assessment]:
        try:
            return self.store.latest_completed(self.organization_id, self.assessment_type)
        except PersistenceError as e:
            self._fail("checking", e)
            return None

    def save(self, responses, current_category_id=None) -> bool:
        """
        Persist in-progress answers.

        The save is checked against the revision this session last saw, so a
        save from an older copy of the assessment is rejected instead of
        overwriting newer answers.
        """
        self.error = None
        pruned = self.engine.prune(responses)
        try:
            if self.assessment is None:
                self.assessment = self.store.load_in_progress(
                    self.organization_id, self.assessment_type
                ) or self.store.create_assessment(
                    self.organization_id, self.assessment_type, current_category_id
                )
            self.assessment = self.store.save_responses(
                self.assessment.id,
                pruned,
                current_category_id=current_category_id,
                expected_revision=self.assessment.revision,
            )
        except StaleRevisionError as e:
            self._fail("saving", e)
            self.notifier.error("Progress was saved from another session; reload before saving again")
            return False
        except PersistenceError as e:
            self._fail("saving", e)
            self.notifier.error("Failed to save progress")
            return False
        self.notifier.success("Progress saved successfully")
        return True

    def complete(self, responses) -> Optional[Assessment]:
        """
        Complete the assessment.

        Returns None, after notifying, when a completed assessment already
        exists (the user must start a new one), when validation fails, or
        when the store fails.
        """
        self.error = None
        if self.has_completed():
            self.notifier.error(
                "An assessment has already been completed. Start a new assessment to retake it."
            )
            return None
        pruned = self.engine.prune(responses)
        self.validation = validate_assessment(self.engine, pruned)
        if self.validation:
            self.notifier.error(f"{len(self.validation)} question(s) need attention before completing")
            return None
        try:
            done = self.store.complete_assessment(self.organization_id, self.assessment_type, pruned)
        except PersistenceError as e:
            self._fail("completing", e)
            self.notifier.error("Failed to save assessment")
            return None
        self.assessment = None
        self.notifier.success(
            config.COMPLETION_MESSAGES.get(self.assessment_type, "Assessment completed successfully!")
        )
        return done

    def start_new(self) -> bool:
        """
        Archive the completed assessment (and any draft) so a retake can begin.
        """
        self.error = None
        try:
            completed = self.store.latest_completed(self.organization_id, self.assessment_type)
            if completed is not None:
                self.store.archive_assessment(completed.id)
            draft = self.store.load_in_progress(self.organization_id, self.assessment_type)
            if draft is not None:
                self.store.archive_assessment(draft.id)
            self.assessment = self.store.create_assessment(self.organization_id, self.assessment_type)
        except PersistenceError as e:
            self._fail("restarting", e)
            self.notifier.error("Failed to start new assessment")
            return False
        label = config.ASSESSMENT_TYPES.get(self.assessment_type, {}).get("label", "assessment")
        self.notifier.success(f"Started new {label.lower()}")
        return True
