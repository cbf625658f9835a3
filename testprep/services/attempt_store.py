"""Data access for attempts and their answers.

Every mutation is a single conditional statement so that concurrent requests
never lose each other's writes:

- time spent is incremented in SQL, never read-then-written;
- writes are guarded by ``status = 'IN_PROGRESS'`` and report whether they
  matched, so callers can fail fast with ``Conflict``;
- terminal transitions also match on ``version`` (optimistic concurrency).

Nothing here commits; the lifecycle controller owns the transaction.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import update, delete, insert
from sqlalchemy.orm import Session

from testprep.models import TestAttempt, AttemptStatus, Answer


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_attempt(db: Session, attempt_id: int) -> Optional[TestAttempt]:
    return db.query(TestAttempt).filter(TestAttempt.id == attempt_id).first()


def find_active_attempt(db: Session, user_id: int, test_id: int) -> Optional[TestAttempt]:
    return db.query(TestAttempt).filter(
        TestAttempt.user_id == user_id,
        TestAttempt.test_id == test_id,
        TestAttempt.status == AttemptStatus.IN_PROGRESS
    ).first()


def list_user_attempts(
    db: Session,
    user_id: int,
    test_id: Optional[int] = None,
    status: Optional[AttemptStatus] = None
) -> List[TestAttempt]:
    query = db.query(TestAttempt).filter(TestAttempt.user_id == user_id)
    if test_id is not None:
        query = query.filter(TestAttempt.test_id == test_id)
    if status is not None:
        query = query.filter(TestAttempt.status == status)
    return query.order_by(TestAttempt.started_at.desc(), TestAttempt.id.desc()).all()


def create_attempt(
    db: Session,
    user_id: int,
    test_id: int,
    total_questions: int,
    duration_minutes: int,
    first_section_id: Optional[int]
) -> TestAttempt:
    attempt = TestAttempt(
        user_id=user_id,
        test_id=test_id,
        status=AttemptStatus.IN_PROGRESS,
        started_at=utc_now(),
        time_spent=0,
        total_questions=total_questions,
        duration_minutes=duration_minutes,
        current_section_id=first_section_id,
        current_question=0,
        version=1
    )
    db.add(attempt)
    db.flush()
    return attempt


def get_answers(db: Session, attempt_id: int) -> List[Answer]:
    return db.query(Answer).filter(
        Answer.test_attempt_id == attempt_id
    ).order_by(Answer.question_id).all()


def answer_map(answers: List[Answer]) -> Dict[str, Dict[str, Any]]:
    """Serialized answer map, keyed by question id."""
    return {
        str(a.question_id): {
            "answer": a.answer_value,
            "time_spent": a.time_spent,
            "submitted_at": ensure_aware(a.submitted_at).isoformat(),
        }
        for a in answers
    }


def values_by_question(answers: List[Answer]) -> Dict[int, Any]:
    return {a.question_id: a.answer_value for a in answers}


def _in_progress(attempt_id: int):
    return (
        TestAttempt.id == attempt_id,
        TestAttempt.status == AttemptStatus.IN_PROGRESS,
    )


def _execute(db: Session, statement) -> int:
    result = db.execute(statement.execution_options(synchronize_session=False))
    return result.rowcount


def increment_time_spent(db: Session, attempt_id: int, seconds: int) -> bool:
    """Add ``seconds`` to the running total. False if the attempt is not running."""
    statement = (
        update(TestAttempt)
        .where(*_in_progress(attempt_id))
        .values(
            time_spent=TestAttempt.time_spent + seconds,
            version=TestAttempt.version + 1,
            updated_at=utc_now()
        )
    )
    return _execute(db, statement) == 1


def update_pointers(
    db: Session,
    attempt_id: int,
    current_section_id: Optional[int] = None,
    current_question: Optional[int] = None,
    time_spent: int = 0
) -> bool:
    values = {
        "time_spent": TestAttempt.time_spent + time_spent,
        "version": TestAttempt.version + 1,
        "updated_at": utc_now(),
    }
    if current_section_id is not None:
        values["current_section_id"] = current_section_id
    if current_question is not None:
        values["current_question"] = current_question
    statement = update(TestAttempt).where(*_in_progress(attempt_id)).values(**values)
    return _execute(db, statement) == 1


def upsert_answer(
    db: Session,
    attempt_id: int,
    question_id: int,
    value: Any,
    time_spent: int,
    submitted_at: datetime
) -> None:
    """Overwrite the answer to one question, inserting it the first time.

    A concurrent first insert for the same question surfaces as
    ``IntegrityError``; the caller retries and the retry takes the update path.
    """
    statement = (
        update(Answer)
        .where(Answer.test_attempt_id == attempt_id, Answer.question_id == question_id)
        .values(answer_value=value, time_spent=time_spent, submitted_at=submitted_at)
    )
    if _execute(db, statement) == 1:
        return

    db.execute(
        insert(Answer).values(
            test_attempt_id=attempt_id,
            question_id=question_id,
            answer_value=value,
            time_spent=time_spent,
            submitted_at=submitted_at
        )
    )


def complete_attempt(
    db: Session,
    attempt_id: int,
    expected_version: int,
    result,
    completed_at: datetime
) -> bool:
    statement = (
        update(TestAttempt)
        .where(*_in_progress(attempt_id), TestAttempt.version == expected_version)
        .values(
            status=AttemptStatus.COMPLETED,
            completed_at=completed_at,
            score=result.overall_score,
            score_percentage=result.percentage,
            correct_answers=result.correct_answers,
            passed=result.passed,
            section_scores=result.section_scores_as_dicts(),
            grading_status=result.grading_status,
            version=TestAttempt.version + 1,
            updated_at=completed_at
        )
    )
    return _execute(db, statement) == 1


def abandon_attempt(db: Session, attempt_id: int, abandoned_at: datetime) -> bool:
    statement = (
        update(TestAttempt)
        .where(*_in_progress(attempt_id))
        .values(
            status=AttemptStatus.ABANDONED,
            abandoned_at=abandoned_at,
            version=TestAttempt.version + 1,
            updated_at=abandoned_at
        )
    )
    return _execute(db, statement) == 1


def save_manual_grades(
    db: Session,
    attempt_id: int,
    expected_version: int,
    manual_grades: Dict[str, float],
    result
) -> bool:
    statement = (
        update(TestAttempt)
        .where(
            TestAttempt.id == attempt_id,
            TestAttempt.status == AttemptStatus.COMPLETED,
            TestAttempt.version == expected_version
        )
        .values(
            manual_grades=manual_grades,
            score=result.overall_score,
            score_percentage=result.percentage,
            correct_answers=result.correct_answers,
            passed=result.passed,
            section_scores=result.section_scores_as_dicts(),
            grading_status=result.grading_status,
            version=TestAttempt.version + 1,
            updated_at=utc_now()
        )
    )
    return _execute(db, statement) == 1


def delete_attempt(db: Session, attempt_id: int, only_in_progress: bool) -> bool:
    if only_in_progress:
        statement = delete(TestAttempt).where(*_in_progress(attempt_id))
    else:
        statement = delete(TestAttempt).where(TestAttempt.id == attempt_id)
    if _execute(db, statement) != 1:
        return False
    # SQLite does not enforce ON DELETE CASCADE unless foreign keys are switched on
    _execute(db, delete(Answer).where(Answer.test_attempt_id == attempt_id))
    return True


def attempt_deadline(attempt: TestAttempt) -> Optional[datetime]:
    if not attempt.duration_minutes:
        return None
    return ensure_aware(attempt.started_at) + timedelta(minutes=attempt.duration_minutes)


def find_expired_attempts(db: Session, now: datetime, grace_minutes: int) -> List[TestAttempt]:
    grace = timedelta(minutes=grace_minutes)
    # Nothing started after now - grace can be past its deadline yet
    candidates = db.query(TestAttempt).filter(
        TestAttempt.status == AttemptStatus.IN_PROGRESS,
        TestAttempt.duration_minutes > 0,
        TestAttempt.started_at < now - grace
    ).all()
    expired = []
    for attempt in candidates:
        if attempt_deadline(attempt) + grace < now:
            expired.append(attempt)
    return expired
