import math
from datetime import datetime
from typing import Dict, List, Optional

from testprep.models import TestAttempt, Test, Answer, AttemptStatus
from testprep.services import catalog
from testprep.services.attempt_store import answer_map, attempt_deadline, ensure_aware, utc_now


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = ensure_aware(value)
    return value.isoformat() if value else None


def progress_percentage(answered: int, total: int) -> int:
    if total <= 0:
        return 0
    # Round half up, 2.5 -> 3
    return int(math.floor(answered / total * 100 + 0.5))


def time_budget(attempt: TestAttempt, now: Optional[datetime] = None) -> Dict:
    """Advisory time budget; nothing closes an attempt when it runs out."""
    now = now or utc_now()
    deadline = attempt_deadline(attempt)
    running = attempt.status == AttemptStatus.IN_PROGRESS
    remaining = None
    overtime = False
    if deadline is not None and running:
        remaining = max(0, int((deadline - now).total_seconds()))
        overtime = now > deadline
    return {
        "duration_minutes": attempt.duration_minutes,
        "deadline": _iso(deadline),
        "remaining_seconds": remaining,
        "is_overtime": overtime,
    }


def attempt_summary(attempt: TestAttempt) -> Dict:
    return {
        "id": attempt.id,
        "test_id": attempt.test_id,
        "user_id": attempt.user_id,
        "status": attempt.status.value,
        "started_at": _iso(attempt.started_at),
        "completed_at": _iso(attempt.completed_at),
        "abandoned_at": _iso(attempt.abandoned_at),
        "time_spent": attempt.time_spent,
        "current_section": attempt.current_section_id,
        "current_question": attempt.current_question,
        "total_questions": attempt.total_questions,
        "score": attempt.score,
        "score_percentage": attempt.score_percentage,
        "correct_answers": attempt.correct_answers,
        "passed": attempt.passed,
        "section_scores": attempt.section_scores,
        "grading_status": attempt.grading_status.value if attempt.grading_status else None,
    }


def attempt_view(
    attempt: TestAttempt,
    test: Test,
    answers: List[Answer],
    privileged: bool = False
) -> Dict:
    """Attempt merged with the structure needed to render the rest of the test."""
    answered = len(answers)
    data = attempt_summary(attempt)
    data["answers"] = answer_map(answers)
    data["progress"] = {
        "answered_questions": answered,
        "total_questions": attempt.total_questions,
        "percentage": progress_percentage(answered, attempt.total_questions),
    }
    data["time_budget"] = time_budget(attempt)
    data["test"] = catalog.serialize_test(test, privileged=privileged)
    if privileged:
        data["manual_grades"] = attempt.manual_grades or {}
    return data
