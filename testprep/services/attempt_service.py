"""Attempt lifecycle controller.

State machine::

    IN_PROGRESS --finalize--> COMPLETED
    IN_PROGRESS --abandon---> ABANDONED

Nothing leaves a terminal state. Every public method takes the resolved
``Caller`` and passes through ``authorize`` before touching the store.
"""

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from testprep.config import settings
from testprep.errors import (
    NotFound, Forbidden, Unauthenticated, Conflict, InvalidTransition,
    ValidationError, ScoringError, StaleAttempt, StoreUnavailable
)
from testprep.models import (
    TestAttempt, AttemptStatus, UserRole, ADMIN_ROLES, TERMINAL_STATUSES, MANUALLY_GRADED_TYPES
)
from testprep.services import attempt_store as store
from testprep.services import catalog
from testprep.services.answer_validation import validate_answer, validate_time_delta
from testprep.services.attempt_views import attempt_view
from testprep.services.scoring import score_attempt, ScoreResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """Identity handed over by the authentication layer."""

    user_id: Optional[int]
    role: UserRole = UserRole.STUDENT

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class AttemptAction(str, enum.Enum):
    READ = "READ"
    MUTATE = "MUTATE"
    DELETE = "DELETE"


def require_caller(caller: Optional[Caller]) -> Caller:
    if caller is None or caller.user_id is None:
        raise Unauthenticated()
    return caller


def require_admin(caller: Optional[Caller]) -> Caller:
    caller = require_caller(caller)
    if not caller.is_admin:
        raise Forbidden("Admin access required")
    return caller


def require_student(caller: Optional[Caller]) -> Caller:
    caller = require_caller(caller)
    if caller.role != UserRole.STUDENT:
        raise Forbidden("Only students can take tests")
    return caller


def authorize(attempt: TestAttempt, caller: Optional[Caller], action: AttemptAction) -> None:
    """Single ownership/role check applied before every attempt operation.

    READ: owner or administrator. MUTATE: owner only. DELETE: administrator,
    or the owner while the attempt is still running.
    """
    caller = require_caller(caller)
    is_owner = attempt.user_id == caller.user_id

    if action == AttemptAction.READ:
        if is_owner or caller.is_admin:
            return
        raise Forbidden()

    if action == AttemptAction.MUTATE:
        if is_owner:
            return
        raise Forbidden()

    if caller.is_admin or (is_owner and attempt.status == AttemptStatus.IN_PROGRESS):
        return
    raise Forbidden("Cannot delete this test attempt")


class AttemptService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self):
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _retry_once(self, work, description: str):
        """Run ``work`` in a transaction, retrying once on a concurrent write.

        The whole transaction is rolled back and replayed, so a retry never
        applies half of the first run. A lock timeout (``OperationalError``)
        is treated the same way; if it persists it surfaces as
        ``StoreUnavailable``.
        """
        for attempt_number in (1, 2):
            try:
                with self._transaction():
                    return work()
            except (StaleAttempt, IntegrityError) as exc:
                if attempt_number == 2:
                    logger.warning(f"{description}: concurrent update persisted after retry ({type(exc).__name__})")
                    raise Conflict("The attempt was modified concurrently, please retry")
                logger.info(f"{description}: concurrent update detected, retrying once")
            except OperationalError as exc:
                if attempt_number == 2:
                    logger.error(f"{description}: store still unavailable after retry ({exc.orig})")
                    raise StoreUnavailable() from exc
                logger.warning(f"{description}: store error ({exc.orig}), retrying once")

    def _load(self, attempt_id: int) -> TestAttempt:
        attempt = store.get_attempt(self.db, attempt_id)
        if not attempt:
            raise NotFound("Test attempt not found")
        return attempt

    def _load_for(self, caller: Optional[Caller], attempt_id: int, action: AttemptAction) -> TestAttempt:
        require_caller(caller)
        attempt = self._load(attempt_id)
        authorize(attempt, caller, action)
        return attempt

    @staticmethod
    def _ensure_in_progress(attempt: TestAttempt) -> None:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            logger.warning(f"Rejected mutation of attempt {attempt.id} in status {attempt.status.value}")
            raise Conflict("Cannot modify a finished attempt")

    def _test_for(self, attempt: TestAttempt):
        # The attempt keeps working even if the test was unpublished after it started
        return catalog.get_test(self.db, attempt.test_id, published_only=False)

    def _score(self, attempt: TestAttempt, test, manual_grades=None) -> ScoreResult:
        answers = store.get_answers(self.db, attempt.id)
        try:
            return score_attempt(test, store.values_by_question(answers), manual_grades)
        except Exception as exc:
            logger.exception(f"Scoring failed for attempt {attempt.id}")
            raise ScoringError() from exc

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    def start_attempt(self, caller: Optional[Caller], test_id: int) -> Tuple[TestAttempt, bool]:
        """Start a test, or resume the caller's running attempt at it. Students only.

        Returns ``(attempt, created)``.
        """
        caller = require_student(caller)
        test = catalog.get_test(self.db, test_id)

        existing = store.find_active_attempt(self.db, caller.user_id, test.id)
        if existing:
            logger.info(f"Resuming attempt {existing.id} for user {caller.user_id} on test {test.id}")
            return existing, False

        try:
            attempt = store.create_attempt(
                self.db,
                user_id=caller.user_id,
                test_id=test.id,
                total_questions=catalog.count_questions(test),
                duration_minutes=test.duration_minutes or 0,
                first_section_id=catalog.first_section_id(test)
            )
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent start; the winner is the attempt
            self.db.rollback()
            existing = store.find_active_attempt(self.db, caller.user_id, test.id)
            if existing is None:
                raise
            logger.info(f"Concurrent start for user {caller.user_id} on test {test.id}, resuming {existing.id}")
            return existing, False

        self.db.refresh(attempt)
        logger.info(f"Started attempt {attempt.id} for user {caller.user_id} on test {test.id}")
        return attempt, True

    def get_attempt(self, caller: Optional[Caller], attempt_id: int) -> Dict:
        attempt = self._load_for(caller, attempt_id, AttemptAction.READ)
        test = self._test_for(attempt)
        answers = store.get_answers(self.db, attempt.id)
        return attempt_view(attempt, test, answers, privileged=caller.is_admin)

    def list_attempts(
        self,
        caller: Optional[Caller],
        test_id: Optional[int] = None,
        status: Optional[AttemptStatus] = None
    ) -> List[TestAttempt]:
        caller = require_caller(caller)
        return store.list_user_attempts(self.db, caller.user_id, test_id=test_id, status=status)

    def submit_answer(
        self,
        caller: Optional[Caller],
        attempt_id: int,
        question_id: int,
        answer: Any,
        time_spent: int = 0
    ) -> TestAttempt:
        attempt = self._load_for(caller, attempt_id, AttemptAction.MUTATE)
        self._ensure_in_progress(attempt)

        test = self._test_for(attempt)
        question = catalog.find_question(test, question_id)
        value = validate_answer(question, answer)
        delta = validate_time_delta(time_spent, settings.MAX_ANSWER_TIME_SECONDS)

        def work():
            if not store.increment_time_spent(self.db, attempt_id, delta):
                raise Conflict("Cannot modify a finished attempt")
            store.upsert_answer(self.db, attempt_id, question_id, value, delta, store.utc_now())

        self._retry_once(work, f"Submit answer to attempt {attempt_id}")
        logger.info(f"Saved answer to question {question_id} on attempt {attempt_id} (+{delta}s)")
        return self._load(attempt_id)

    def update_progress(
        self,
        caller: Optional[Caller],
        attempt_id: int,
        current_section: Optional[int] = None,
        current_question: Optional[int] = None,
        status: Optional[AttemptStatus] = None,
        time_spent: Optional[int] = None
    ) -> TestAttempt:
        attempt = self._load_for(caller, attempt_id, AttemptAction.MUTATE)
        if status is not None:
            status = AttemptStatus(status)

        if attempt.status in TERMINAL_STATUSES:
            if status is not None:
                raise InvalidTransition(
                    f"Cannot change status from {attempt.status.value} to {status.value}"
                )
            self._ensure_in_progress(attempt)

        if current_section is not None:
            catalog.find_section(self._test_for(attempt), current_section)
        if current_question is not None and current_question < 0:
            raise ValidationError("Current question cannot be negative")
        delta = validate_time_delta(time_spent, settings.MAX_ANSWER_TIME_SECONDS)

        if current_section is not None or current_question is not None or delta:
            with self._transaction():
                if not store.update_pointers(self.db, attempt_id, current_section, current_question, delta):
                    raise Conflict("Cannot modify a finished attempt")

        if status == AttemptStatus.COMPLETED:
            return self.finalize_attempt(caller, attempt_id)
        if status == AttemptStatus.ABANDONED:
            return self.abandon_attempt(caller, attempt_id)
        return self._load(attempt_id)

    def finalize_attempt(self, caller: Optional[Caller], attempt_id: int) -> TestAttempt:
        def work():
            attempt = self._load_for(caller, attempt_id, AttemptAction.MUTATE)
            self._ensure_in_progress(attempt)
            expected_version = attempt.version
            result = self._score(attempt, self._test_for(attempt))
            if not store.complete_attempt(self.db, attempt_id, expected_version, result, store.utc_now()):
                raise StaleAttempt()
            return result

        result = self._retry_once(work, f"Finalize attempt {attempt_id}")
        logger.info(
            f"Completed attempt {attempt_id}: score={result.overall_score} "
            f"({result.percentage}%), grading={result.grading_status.value}"
        )
        return self._load(attempt_id)

    def abandon_attempt(self, caller: Optional[Caller], attempt_id: int) -> TestAttempt:
        attempt = self._load_for(caller, attempt_id, AttemptAction.MUTATE)
        self._ensure_in_progress(attempt)
        with self._transaction():
            if not store.abandon_attempt(self.db, attempt_id, store.utc_now()):
                raise Conflict("Cannot modify a finished attempt")
        logger.info(f"Attempt {attempt_id} abandoned by user {caller.user_id}")
        return self._load(attempt_id)

    def delete_attempt(self, caller: Optional[Caller], attempt_id: int) -> None:
        attempt = self._load_for(caller, attempt_id, AttemptAction.DELETE)
        with self._transaction():
            if not store.delete_attempt(self.db, attempt.id, only_in_progress=not caller.is_admin):
                if caller.is_admin:
                    raise NotFound("Test attempt not found")
                raise Forbidden("Cannot delete this test attempt")
        logger.info(f"Attempt {attempt_id} deleted by user {caller.user_id} ({caller.role.value})")

    def preview_score(self, caller: Optional[Caller], attempt_id: int) -> ScoreResult:
        """Dry run of the scorer on the current answers. Never persisted."""
        require_admin(caller)
        attempt = self._load_for(caller, attempt_id, AttemptAction.READ)
        return self._score(attempt, self._test_for(attempt), attempt.manual_grades)

    def grade_answer(
        self,
        caller: Optional[Caller],
        attempt_id: int,
        question_id: int,
        points: float
    ) -> TestAttempt:
        """Attach a human grade to a free-text or speaking answer and re-score."""
        require_admin(caller)

        def work():
            attempt = self._load_for(caller, attempt_id, AttemptAction.READ)
            if attempt.status != AttemptStatus.COMPLETED:
                raise Conflict("Only completed attempts can be graded")

            test = self._test_for(attempt)
            question = catalog.find_question(test, question_id)
            if question.question_type not in MANUALLY_GRADED_TYPES:
                raise ValidationError("Only free-text and speaking answers are graded manually")
            answered = {a.question_id for a in store.get_answers(self.db, attempt.id)}
            if question_id not in answered:
                raise NotFound("No answer to grade for this question")
            if points is None or points < 0 or points > question.points:
                raise ValidationError(f"Points must be between 0 and {question.points}")

            grades = dict(attempt.manual_grades or {})
            grades[str(question_id)] = float(points)
            result = self._score(attempt, test, grades)
            if not store.save_manual_grades(self.db, attempt_id, attempt.version, grades, result):
                raise StaleAttempt()
            return result

        result = self._retry_once(work, f"Grade attempt {attempt_id}")
        logger.info(
            f"Question {question_id} on attempt {attempt_id} graded by user {caller.user_id}; "
            f"grading={result.grading_status.value}"
        )
        return self._load(attempt_id)

    def abandon_expired_attempts(self, caller: Optional[Caller], grace_minutes: Optional[int] = None) -> List[int]:
        """Abandon running attempts that are past their time budget plus grace."""
        require_admin(caller)
        if grace_minutes is None:
            grace_minutes = settings.ATTEMPT_EXPIRY_GRACE_MINUTES
        if grace_minutes < 0:
            raise ValidationError("Grace period cannot be negative")

        now = store.utc_now()
        abandoned = []
        with self._transaction():
            for attempt in store.find_expired_attempts(self.db, now, grace_minutes):
                if store.abandon_attempt(self.db, attempt.id, now):
                    abandoned.append(attempt.id)
        logger.info(f"Expiry sweep abandoned {len(abandoned)} attempt(s): {abandoned}")
        return abandoned
