from sqlalchemy import Column, Integer, String, Text, Enum, Boolean, DateTime, Float
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from testprep.database import Base


class TestType(str, enum.Enum):
    IELTS = "IELTS"
    TOEFL = "TOEFL"
    PTE = "PTE"
    GRE = "GRE"
    GMAT = "GMAT"
    SAT = "SAT"
    DUOLINGO = "DUOLINGO"
    OTHER = "OTHER"


class Test(Base):
    __tablename__ = "tests"
    __test__ = False  # keep pytest from collecting the model

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    test_type = Column(Enum(TestType), nullable=False, default=TestType.OTHER)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    total_questions = Column(Integer, nullable=False, default=0)  # Declared count, shown in the catalog
    passing_score = Column(Float, nullable=True)  # Percentage needed to pass
    score_scale = Column(Float, nullable=True)  # e.g. 9.0 for IELTS bands; None keeps raw points
    is_published = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    sections = relationship(
        "Section",
        back_populates="test",
        cascade="all, delete-orphan",
        order_by="Section.order_index",
    )
    attempts = relationship("TestAttempt", back_populates="test", cascade="all, delete-orphan")

    def iter_questions(self):
        for section in self.sections:
            for question in section.questions:
                yield section, question
