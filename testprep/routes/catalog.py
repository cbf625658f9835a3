from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from testprep.database import get_db
from testprep.auth.dependencies import get_caller
from testprep.services import catalog
from testprep.services.attempt_service import Caller

router = APIRouter(prefix="/tests", tags=["tests"])


class TestListResponse(BaseModel):
    tests: List[Dict[str, Any]]


@router.get("", response_model=TestListResponse)
def list_tests(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Published tests, without their questions"""
    tests = catalog.list_published_tests(db)
    return {"tests": [catalog.serialize_test(t, include_sections=False) for t in tests]}


@router.get("/{test_id}")
def get_test(
    test_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller)
):
    """Published test structure; correct answers only for admins"""
    test = catalog.get_test(db, test_id, published_only=not caller.is_admin)
    return {"test": catalog.serialize_test(test, privileged=caller.is_admin)}
