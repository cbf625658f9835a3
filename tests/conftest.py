"""
Shared fixtures: in-memory database, seeded users, catalog factory, API client.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from testprep import models as m
from testprep.auth.jwt import create_access_token
from testprep.database import Base, build_engine, get_db
from testprep.main import app
from testprep.services.attempt_service import AttemptService, Caller


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db, email, role):
    user = m.User(email=email, full_name=email.split("@")[0].title(), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db_session):
    return _make_user(db_session, "student@example.com", m.UserRole.STUDENT)


@pytest.fixture
def other_student(db_session):
    return _make_user(db_session, "other@example.com", m.UserRole.STUDENT)


@pytest.fixture
def admin(db_session):
    return _make_user(db_session, "admin@example.com", m.UserRole.ADMIN)


def caller_for(user):
    return Caller(user_id=user.id, role=user.role)


def headers_for(user):
    token = create_access_token({"sub": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def service(db_session):
    return AttemptService(db_session)


OPTIONS_ABCD = [
    {"key": "A", "text": "Option A"},
    {"key": "B", "text": "Option B"},
    {"key": "C", "text": "Option C"},
    {"key": "D", "text": "Option D"},
]


def build_test(sections, **kwargs):
    """Transient Test from [(section name, [question kwargs, ...]), ...]."""
    test = m.Test(
        title=kwargs.pop("title", "Practice Test"),
        slug=kwargs.pop("slug", "practice-test"),
        test_type=kwargs.pop("test_type", m.TestType.IELTS),
        duration_minutes=kwargs.pop("duration_minutes", 60),
        is_published=kwargs.pop("is_published", True),
        **kwargs
    )
    total = 0
    for section_index, (name, questions) in enumerate(sections, start=1):
        section = m.Section(name=name, order_index=section_index, question_count=len(questions))
        for question_index, question_kwargs in enumerate(questions, start=1):
            question_kwargs = dict(question_kwargs)
            question_kwargs.setdefault("question_text", f"{name} question {question_index}")
            question_kwargs.setdefault("question_type", m.QuestionType.SINGLE_CHOICE)
            question_kwargs.setdefault("points", 1.0)
            if question_kwargs["question_type"] in m.CHOICE_TYPES:
                question_kwargs.setdefault("options", OPTIONS_ABCD)
            section.questions.append(m.Question(order_index=question_index, **question_kwargs))
        total += len(questions)
        test.sections.append(section)
    test.total_questions = total
    return test


@pytest.fixture
def make_test(db_session):
    counter = {"n": 0}

    def factory(sections, **kwargs):
        counter["n"] += 1
        kwargs.setdefault("slug", f"practice-test-{counter['n']}")
        test = build_test(sections, **kwargs)
        db_session.add(test)
        db_session.commit()
        db_session.refresh(test)
        return test

    return factory


@pytest.fixture
def two_question_test(make_test):
    """Single section: Q1 correct 'A' worth 2 points, Q2 correct 'B' worth 3 points."""
    return make_test([
        ("Reading", [
            {"correct_answer": "A", "points": 2.0},
            {"correct_answer": "B", "points": 3.0},
        ]),
    ])


@pytest.fixture
def mixed_test(make_test):
    return make_test([
        ("Listening", [
            {"correct_answer": "C", "points": 1.0},
            {"question_type": m.QuestionType.FILL_IN_BLANK, "correct_answer": "nine", "points": 1.0},
        ]),
        ("Reading", [
            {"question_type": m.QuestionType.MULTI_CHOICE, "correct_answer": ["B", "D"], "points": 2.0},
        ]),
        ("Writing", [
            {"question_type": m.QuestionType.FREE_TEXT, "correct_answer": None, "points": 4.0},
        ]),
    ], passing_score=50.0)


def question_ids(test):
    return [q.id for _, q in test.iter_questions()]
