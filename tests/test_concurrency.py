"""
Concurrent requests against one attempt, each on its own session and
connection, on a file-backed SQLite database.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import caller_for, question_ids
from testprep import models as m
from testprep.database import Base, build_engine
from testprep.services.attempt_service import AttemptService


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


def run_concurrently(session_factory, calls):
    """Run each ``call(service)`` on its own thread and session, released together."""
    barrier = threading.Barrier(len(calls))

    def worker(call):
        db = session_factory()
        try:
            barrier.wait(timeout=5)
            return call(AttemptService(db))
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(worker, call) for call in calls]
        return [future.result(timeout=30) for future in futures]


def test_concurrent_answers_are_both_kept(session_factory, service, student, two_question_test):
    caller = caller_for(student)
    attempt, _ = service.start_attempt(caller, two_question_test.id)
    attempt_id = attempt.id
    q1, q2 = question_ids(two_question_test)

    run_concurrently(session_factory, [
        lambda svc: svc.submit_answer(caller, attempt_id, q1, "A", 12),
        lambda svc: svc.submit_answer(caller, attempt_id, q2, "B", 30),
    ])

    db = session_factory()
    try:
        view = AttemptService(db).get_attempt(caller, attempt_id)
    finally:
        db.close()
    assert set(view["answers"]) == {str(q1), str(q2)}
    assert view["time_spent"] == 42


def test_concurrent_starts_share_one_attempt(session_factory, student, two_question_test, db_session):
    caller = caller_for(student)
    test_id = two_question_test.id

    results = run_concurrently(session_factory, [
        lambda svc: svc.start_attempt(caller, test_id)[0].id,
        lambda svc: svc.start_attempt(caller, test_id)[0].id,
    ])

    assert results[0] == results[1]
    running = db_session.query(m.TestAttempt).filter(
        m.TestAttempt.user_id == student.id,
        m.TestAttempt.status == m.AttemptStatus.IN_PROGRESS
    ).count()
    assert running == 1
