from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from testprep.database import get_db
from testprep.models import AttemptStatus, TestType
from testprep.auth.dependencies import get_caller
from testprep.services import reports
from testprep.services.attempt_service import Caller
from testprep.services.attempt_views import attempt_summary

router = APIRouter(prefix="/users/me/test-results", tags=["user-results"])


class TypeStatistics(BaseModel):
    total_attempts: int
    average_score: float
    best_score: float
    passed_attempts: int
    total_time_spent: int


class ResultStatistics(BaseModel):
    overall: TypeStatistics
    by_test_type: Dict[str, TypeStatistics]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UserResultsResponse(BaseModel):
    attempts: List[Dict[str, Any]]
    pagination: Pagination
    statistics: ResultStatistics


@router.get("", response_model=UserResultsResponse)
def get_user_results(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    attempt_status: Optional[AttemptStatus] = Query(None, alias="status"),
    test_type: Optional[TestType] = Query(None),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Caller's attempts with per-test-type statistics over completed ones"""
    results = reports.user_results(
        db, caller.user_id, page=page, limit=limit, status=attempt_status, test_type=test_type
    )
    attempts = []
    for attempt in results["attempts"]:
        data = attempt_summary(attempt)
        data["test"] = {
            "id": attempt.test.id,
            "title": attempt.test.title,
            "test_type": attempt.test.test_type.value,
            "passing_score": attempt.test.passing_score,
        }
        attempts.append(data)
    results["attempts"] = attempts
    return results
