from sqlalchemy import Column, Integer, ForeignKey, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from testprep.database import Base


class Answer(Base):
    __tablename__ = "attempt_answers"
    __table_args__ = (
        UniqueConstraint("test_attempt_id", "question_id", name="uq_attempt_answers_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    test_attempt_id = Column(Integer, ForeignKey("test_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("test_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    answer_value = Column(JSON, nullable=True)
    time_spent = Column(Integer, default=0, nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=False)

    test_attempt = relationship("TestAttempt", back_populates="answers")
    question = relationship("Question")
