import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from testprep.database import get_db
from testprep.auth.dependencies import get_caller, require_admin
from testprep.services import catalog, reports
from testprep.services.attempt_service import AttemptService, Caller
from testprep.services.attempt_views import attempt_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class GradeAnswerRequest(BaseModel):
    question_id: int
    points: float


class SweepResponse(BaseModel):
    abandoned_attempt_ids: List[int]
    count: int


class TestAttemptsResponse(BaseModel):
    test: Dict[str, Any]
    attempts: List[Dict[str, Any]]
    total_attempts: int
    completed_attempts: int
    abandoned_attempts: int
    in_progress_attempts: int
    average_score: float
    pass_rate: float
    average_time_spent: float


@router.post("/test-attempts/{attempt_id}/grades")
def grade_answer(
    attempt_id: int,
    body: GradeAnswerRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Attach a manual grade to a free-text or speaking answer (Admin only)"""
    attempt = AttemptService(db).grade_answer(caller, attempt_id, body.question_id, body.points)
    data = attempt_summary(attempt)
    data["manual_grades"] = attempt.manual_grades or {}
    return data


@router.post("/test-attempts/sweep-expired", response_model=SweepResponse)
def sweep_expired_attempts(
    grace_minutes: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Abandon running attempts past their time budget (Admin only)"""
    abandoned = AttemptService(db).abandon_expired_attempts(caller, grace_minutes)
    return {"abandoned_attempt_ids": abandoned, "count": len(abandoned)}


@router.get("/tests/{test_id}/attempts", response_model=TestAttemptsResponse)
def get_test_attempts(
    test_id: int,
    db: Session = Depends(get_db)
):
    """All attempts at one test with completion and score statistics (Admin only)"""
    test = catalog.get_test(db, test_id, published_only=False)
    stats = reports.attempt_statistics_for_test(db, test.id)
    stats["attempts"] = [attempt_summary(a) for a in stats["attempts"]]
    stats["test"] = catalog.serialize_test(test, include_sections=False)
    logger.info(f"Admin statistics for test {test_id}: {stats['total_attempts']} attempt(s)")
    return stats
