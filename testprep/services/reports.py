from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from testprep.models import Test, TestAttempt, AttemptStatus, TestType


def _empty_stats() -> Dict:
    return {
        "total_attempts": 0,
        "average_score": 0.0,
        "best_score": 0.0,
        "passed_attempts": 0,
        "total_time_spent": 0,
    }


def _accumulate(stats: Dict, attempt: TestAttempt) -> None:
    percentage = attempt.score_percentage or 0.0
    stats["total_attempts"] += 1
    stats["average_score"] += percentage
    stats["best_score"] = max(stats["best_score"], percentage)
    stats["total_time_spent"] += attempt.time_spent or 0
    if attempt.passed:
        stats["passed_attempts"] += 1


def _finish(stats: Dict) -> Dict:
    if stats["total_attempts"] > 0:
        stats["average_score"] = round(stats["average_score"] / stats["total_attempts"], 2)
    return stats


def user_results(
    db: Session,
    user_id: int,
    page: int = 1,
    limit: int = 10,
    status: Optional[AttemptStatus] = None,
    test_type: Optional[TestType] = None
) -> Dict:
    """Paginated attempts of one user plus statistics over the completed ones."""
    query = db.query(TestAttempt).join(Test, Test.id == TestAttempt.test_id).filter(
        TestAttempt.user_id == user_id
    )
    if status is not None:
        query = query.filter(TestAttempt.status == status)
    if test_type is not None:
        query = query.filter(Test.test_type == test_type)

    total_count = query.count()
    attempts = query.order_by(
        TestAttempt.started_at.desc(), TestAttempt.id.desc()
    ).offset((page - 1) * limit).limit(limit).all()

    completed = db.query(TestAttempt).filter(
        TestAttempt.user_id == user_id,
        TestAttempt.status == AttemptStatus.COMPLETED
    ).all()

    overall = _empty_stats()
    by_type: Dict[str, Dict] = {}
    for attempt in completed:
        _accumulate(overall, attempt)
        type_key = attempt.test.test_type.value
        if type_key not in by_type:
            by_type[type_key] = _empty_stats()
        _accumulate(by_type[type_key], attempt)

    return {
        "attempts": attempts,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total_count,
            "pages": (total_count + limit - 1) // limit if limit else 0,
        },
        "statistics": {
            "overall": _finish(overall),
            "by_test_type": {key: _finish(value) for key, value in by_type.items()},
        },
    }


def attempt_statistics_for_test(db: Session, test_id: int) -> Dict:
    attempts: List[TestAttempt] = db.query(TestAttempt).filter(
        TestAttempt.test_id == test_id
    ).order_by(TestAttempt.started_at.desc(), TestAttempt.id.desc()).all()

    counts = {status.value: 0 for status in AttemptStatus}
    for attempt in attempts:
        counts[attempt.status.value] += 1

    completed = [a for a in attempts if a.status == AttemptStatus.COMPLETED]
    scored = [a.score_percentage for a in completed if a.score_percentage is not None]
    graded_for_pass = [a for a in completed if a.passed is not None]
    passed = [a for a in graded_for_pass if a.passed]

    return {
        "attempts": attempts,
        "total_attempts": len(attempts),
        "completed_attempts": counts[AttemptStatus.COMPLETED.value],
        "abandoned_attempts": counts[AttemptStatus.ABANDONED.value],
        "in_progress_attempts": counts[AttemptStatus.IN_PROGRESS.value],
        "average_score": round(sum(scored) / len(scored), 2) if scored else 0.0,
        "pass_rate": round(len(passed) / len(graded_for_pass) * 100, 2) if graded_for_pass else 0.0,
        "average_time_spent": round(sum(a.time_spent for a in completed) / len(completed), 2) if completed else 0.0,
    }
