import logging

from sqlalchemy.orm import Session

from testprep.models import User, UserRole, Test, TestType, Section, Question, QuestionType

logger = logging.getLogger(__name__)

DEMO_TEST_SLUG = "ielts-academic-practice"

# (section name, time limit, [(type, text, options, correct answer, points)])
DEMO_SECTIONS = [
    ("Listening", 30, [
        (QuestionType.SINGLE_CHOICE, "Where does the speaker suggest meeting?",
         ["A) Library", "B) Cafeteria", "C) Main gate"], "B", 1),
        (QuestionType.FILL_IN_BLANK, "The seminar starts at ____ o'clock.", None, "nine", 1),
    ]),
    ("Reading", 60, [
        (QuestionType.SINGLE_CHOICE, "What is the main idea of paragraph 2?",
         ["A) Climate policy", "B) Urban farming", "C) Water rights", "D) Trade"], "B", 1),
        (QuestionType.MULTI_CHOICE, "Which TWO benefits does the writer mention?",
         ["A) Lower cost", "B) Less waste", "C) More jobs", "D) Faster delivery"], ["B", "C"], 2),
    ]),
    ("Writing", 60, [
        (QuestionType.FREE_TEXT, "Describe the chart in at least 150 words.", None, None, 9),
    ]),
    ("Speaking", 14, [
        (QuestionType.SPEAKING, "Talk about a place you would like to visit.", None, None, 9),
    ]),
]


def seed_demo_catalog(db: Session) -> None:
    """Seed an admin user and one published practice test if missing."""
    try:
        admin_exists = db.query(User).filter(User.role == UserRole.ADMIN).first()
        if not admin_exists:
            db.add(User(email="admin@test.com", full_name="Admin User", role=UserRole.ADMIN))
            logger.info("Admin user created")
        else:
            logger.info("Admin already exists")

        if db.query(Test).filter(Test.slug == DEMO_TEST_SLUG).first():
            logger.info("Demo test already exists")
            db.commit()
            return

        test = Test(
            title="IELTS Academic Practice Test",
            slug=DEMO_TEST_SLUG,
            test_type=TestType.IELTS,
            description="Short practice run covering all four IELTS modules",
            duration_minutes=164,
            passing_score=60.0,
            score_scale=9.0,
            is_published=True
        )
        total = 0
        for section_index, (name, time_limit, questions) in enumerate(DEMO_SECTIONS, start=1):
            section = Section(
                name=name,
                order_index=section_index,
                time_limit_minutes=time_limit,
                question_count=len(questions)
            )
            for question_index, (qtype, text, options, correct, points) in enumerate(questions, start=1):
                section.questions.append(Question(
                    question_text=text,
                    question_type=qtype,
                    options=options,
                    correct_answer=correct,
                    points=points,
                    order_index=question_index
                ))
            total += len(questions)
            test.sections.append(section)
        test.total_questions = total

        db.add(test)
        db.commit()
        logger.info(f"Created demo test '{test.title}' with {total} questions")
    except Exception:
        logger.exception("Seed error")
        db.rollback()
        raise
