"""Read side of the test catalog.

The engine never writes to the catalog. Correct answers and explanations are
only exposed through the privileged serializer, which callers must gate on
the administrator role.
"""

import json
import re
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from testprep.errors import NotFound
from testprep.models import Test, Section, Question


def get_test(db: Session, test_id: int, published_only: bool = True) -> Test:
    query = db.query(Test).options(
        selectinload(Test.sections).selectinload(Section.questions)
    ).filter(Test.id == test_id)
    if published_only:
        query = query.filter(Test.is_published == True)  # noqa: E712
    test = query.first()
    if not test:
        raise NotFound("Test not found")
    return test


def list_published_tests(db: Session) -> List[Test]:
    return db.query(Test).filter(Test.is_published == True).order_by(Test.title).all()  # noqa: E712


def find_question(test: Test, question_id: int) -> Question:
    for _, question in test.iter_questions():
        if question.id == question_id:
            return question
    raise NotFound("Question not found in this test")


def find_section(test: Test, section_id: int) -> Section:
    for section in test.sections:
        if section.id == section_id:
            return section
    raise NotFound("Section not found in this test")


def count_questions(test: Test) -> int:
    return sum(len(section.questions) for section in test.sections)


def first_section_id(test: Test) -> Optional[int]:
    return test.sections[0].id if test.sections else None


def parse_options(options) -> List[Dict[str, str]]:
    """
    Normalize a stored option set to a list of {"key", "text"} dicts.
    Handles formats like:
    - [{"key": "A", "text": "..."}]
    - ["A) Option A", "B) Option B"]
    - "A) Option A, B) Option B" (legacy string column)
    """
    if not options:
        return []

    if isinstance(options, str):
        try:
            options = json.loads(options)
        except (json.JSONDecodeError, ValueError):
            parts = re.split(r',\s*(?=[A-Z][\)\.])', options)
            options = [part.strip() for part in parts if part.strip()]

    option_pattern = re.compile(r'^([A-Z])[\)\.]\s*(.+)$', re.IGNORECASE)
    result = []
    for item in options:
        if isinstance(item, dict):
            key = item.get("key", item.get("value", ""))
            text = item.get("text", item.get("label", ""))
            if key and text:
                result.append({"key": str(key).upper(), "text": str(text).strip()})
        elif isinstance(item, str):
            match = option_pattern.match(item.strip())
            if match:
                result.append({"key": match.group(1).upper(), "text": match.group(2).strip()})
    return result


def option_keys(question: Question) -> List[str]:
    return [option["key"] for option in parse_options(question.options)]


def serialize_question(question: Question, privileged: bool = False) -> Dict:
    data = {
        "id": question.id,
        "section_id": question.section_id,
        "question_text": question.question_text,
        "question_type": question.question_type.value,
        "options": parse_options(question.options),
        "points": question.points,
        "order_index": question.order_index,
        "audio_url": question.audio_url,
        "image_url": question.image_url,
    }
    if privileged:
        data["correct_answer"] = question.correct_answer
        data["explanation"] = question.explanation
    return data


def serialize_section(section: Section, privileged: bool = False) -> Dict:
    return {
        "id": section.id,
        "name": section.name,
        "order_index": section.order_index,
        "question_count": section.question_count or len(section.questions),
        "time_limit_minutes": section.time_limit_minutes,
        "instructions": section.instructions,
        "questions": [serialize_question(q, privileged) for q in section.questions],
    }


def serialize_test(test: Test, privileged: bool = False, include_sections: bool = True) -> Dict:
    data = {
        "id": test.id,
        "title": test.title,
        "slug": test.slug,
        "test_type": test.test_type.value,
        "description": test.description,
        "duration_minutes": test.duration_minutes,
        "total_questions": test.total_questions or count_questions(test),
        "passing_score": test.passing_score,
        "score_scale": test.score_scale,
    }
    if include_sections:
        data["sections"] = [serialize_section(s, privileged) for s in test.sections]
    return data
