from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from testprep.database import get_db
from testprep.models import AttemptStatus
from testprep.auth.dependencies import get_caller
from testprep.services import catalog
from testprep.services.attempt_service import AttemptService, Caller
from testprep.services.attempt_views import attempt_summary

router = APIRouter(prefix="/test-attempts", tags=["test-attempts"])


class StartAttemptRequest(BaseModel):
    test_id: int


class SubmitAnswerRequest(BaseModel):
    question_id: int
    answer: Any = None  # shape depends on the question type, checked by the service
    time_spent: int = 0


class UpdateProgressRequest(BaseModel):
    current_section: Optional[int] = None
    current_question: Optional[int] = None
    status: Optional[AttemptStatus] = None
    time_spent: Optional[int] = None


class AttemptResponse(BaseModel):
    id: int
    test_id: int
    user_id: int
    status: str
    started_at: Optional[str]
    completed_at: Optional[str]
    abandoned_at: Optional[str]
    time_spent: int
    current_section: Optional[int]
    current_question: int
    total_questions: int
    score: Optional[float]
    score_percentage: Optional[float]
    correct_answers: Optional[int]
    passed: Optional[bool]
    section_scores: Optional[List[Dict[str, Any]]]
    grading_status: Optional[str]


class AnswerEntry(BaseModel):
    answer: Any
    time_spent: int
    submitted_at: str


class ProgressResponse(BaseModel):
    answered_questions: int
    total_questions: int
    percentage: int


class TimeBudgetResponse(BaseModel):
    duration_minutes: int
    deadline: Optional[str]
    remaining_seconds: Optional[int]
    is_overtime: bool


class AttemptViewResponse(AttemptResponse):
    answers: Dict[str, AnswerEntry]
    progress: ProgressResponse
    time_budget: TimeBudgetResponse
    test: Dict[str, Any]
    manual_grades: Optional[Dict[str, float]] = None


class StartAttemptResponse(BaseModel):
    attempt: AttemptResponse
    test: Dict[str, Any]
    message: str


class AttemptListResponse(BaseModel):
    attempts: List[AttemptResponse]


class ScorePreviewResponse(BaseModel):
    overall_score: float
    percentage: float
    correct_answers: int
    total_points: float
    earned_points: float
    passed: Optional[bool]
    grading_status: str
    section_scores: List[Dict[str, Any]]


@router.post("", response_model=StartAttemptResponse, status_code=status.HTTP_201_CREATED)
def start_attempt(
    body: StartAttemptRequest,
    response: Response,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Start a test attempt, or resume the caller's running attempt"""
    attempt, created = AttemptService(db).start_attempt(caller, body.test_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return {
        "attempt": attempt_summary(attempt),
        "test": catalog.serialize_test(attempt.test, privileged=False),
        "message": "Test attempt started successfully" if created else "Resuming existing attempt",
    }


@router.get("", response_model=AttemptListResponse)
def list_attempts(
    test_id: Optional[int] = Query(None),
    attempt_status: Optional[AttemptStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """List the caller's own attempts, newest first"""
    attempts = AttemptService(db).list_attempts(caller, test_id=test_id, status=attempt_status)
    return {"attempts": [attempt_summary(a) for a in attempts]}


@router.get("/{attempt_id}", response_model=AttemptViewResponse)
def get_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Attempt with answers, progress, time budget and the test structure"""
    return AttemptService(db).get_attempt(caller, attempt_id)


@router.put("/{attempt_id}/answers", response_model=AttemptResponse)
def submit_answer(
    attempt_id: int,
    body: SubmitAnswerRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Save (or overwrite) the answer to one question"""
    attempt = AttemptService(db).submit_answer(
        caller, attempt_id, body.question_id, body.answer, body.time_spent
    )
    return attempt_summary(attempt)


@router.patch("/{attempt_id}", response_model=AttemptResponse)
def update_progress(
    attempt_id: int,
    body: UpdateProgressRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Move the resume pointer, add time, or finish the attempt"""
    attempt = AttemptService(db).update_progress(
        caller,
        attempt_id,
        current_section=body.current_section,
        current_question=body.current_question,
        status=body.status,
        time_spent=body.time_spent
    )
    return attempt_summary(attempt)


@router.post("/{attempt_id}/finalize", response_model=AttemptResponse)
def finalize_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    attempt = AttemptService(db).finalize_attempt(caller, attempt_id)
    return attempt_summary(attempt)


@router.post("/{attempt_id}/abandon", response_model=AttemptResponse)
def abandon_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    attempt = AttemptService(db).abandon_attempt(caller, attempt_id)
    return attempt_summary(attempt)


@router.delete("/{attempt_id}")
def delete_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Delete an attempt (admins: any; owners: only while in progress)"""
    AttemptService(db).delete_attempt(caller, attempt_id)
    return {"message": "Test attempt deleted successfully"}


@router.get("/{attempt_id}/score-preview", response_model=ScorePreviewResponse)
def preview_score(
    attempt_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Score the current answers without saving anything (Admin only)"""
    return AttemptService(db).preview_score(caller, attempt_id).to_dict()
