from sqlalchemy import Column, Integer, String, Text, Enum, Float, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from testprep.database import Base


class QuestionType(str, enum.Enum):
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTI_CHOICE = "MULTI_CHOICE"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    FREE_TEXT = "FREE_TEXT"
    SPEAKING = "SPEAKING"


CHOICE_TYPES = (QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE)
MANUALLY_GRADED_TYPES = (QuestionType.FREE_TEXT, QuestionType.SPEAKING)


class Question(Base):
    __tablename__ = "test_questions"

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, ForeignKey("test_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(Enum(QuestionType), nullable=False)
    options = Column(JSON, nullable=True)  # [{"key": "A", "text": "..."}]
    correct_answer = Column(JSON, nullable=True)  # "A" / ["A", "C"] / "word"; None for manual grading
    explanation = Column(Text, nullable=True)
    points = Column(Float, nullable=False, default=1.0)
    order_index = Column(Integer, default=0, nullable=False)
    audio_url = Column(String(500), nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    section = relationship("Section", back_populates="questions")
