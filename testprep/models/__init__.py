from testprep.models.user import User, UserRole, ADMIN_ROLES
from testprep.models.test import Test, TestType
from testprep.models.section import Section
from testprep.models.question import Question, QuestionType, CHOICE_TYPES, MANUALLY_GRADED_TYPES
from testprep.models.test_attempt import TestAttempt, AttemptStatus, GradingStatus, TERMINAL_STATUSES
from testprep.models.answer import Answer

__all__ = [
    "User",
    "UserRole",
    "ADMIN_ROLES",
    "Test",
    "TestType",
    "Section",
    "Question",
    "QuestionType",
    "CHOICE_TYPES",
    "MANUALLY_GRADED_TYPES",
    "TestAttempt",
    "AttemptStatus",
    "GradingStatus",
    "TERMINAL_STATUSES",
    "Answer",
]
