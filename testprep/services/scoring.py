"""Scorer for finished attempts.

``score_attempt`` is a pure function over the test structure and the answer
values: it reads nothing from the database and writes nothing. The lifecycle
controller persists its result on finalize; the admin preview calls it
without persisting.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from testprep.models import Test, Question, QuestionType, GradingStatus, MANUALLY_GRADED_TYPES


@dataclass
class SectionScore:
    section_id: int
    section_name: str
    total_questions: int = 0
    correct_answers: int = 0
    total_points: float = 0.0
    earned_points: float = 0.0
    percentage: float = 0.0
    pending_review: int = 0

    def to_dict(self) -> Dict:
        return {
            "section_id": self.section_id,
            "section_name": self.section_name,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "total_points": self.total_points,
            "earned_points": self.earned_points,
            "percentage": self.percentage,
            "pending_review": self.pending_review,
        }


@dataclass
class ScoreResult:
    overall_score: float = 0.0
    percentage: float = 0.0
    correct_answers: int = 0
    total_points: float = 0.0
    earned_points: float = 0.0
    passed: Optional[bool] = None
    grading_status: GradingStatus = GradingStatus.GRADED
    section_scores: List[SectionScore] = field(default_factory=list)

    def section_scores_as_dicts(self) -> List[Dict]:
        return [s.to_dict() for s in self.section_scores]

    def to_dict(self) -> Dict:
        return {
            "overall_score": self.overall_score,
            "percentage": self.percentage,
            "correct_answers": self.correct_answers,
            "total_points": self.total_points,
            "earned_points": self.earned_points,
            "passed": self.passed,
            "grading_status": self.grading_status.value,
            "section_scores": self.section_scores_as_dicts(),
        }


def _normalize_key(value: Any) -> str:
    return str(value).strip().upper()


def is_correct(question: Question, answer: Any) -> bool:
    """Type-specific equality between a submitted answer and the correct one."""
    correct = question.correct_answer
    if answer is None or correct is None:
        return False

    qtype = question.question_type
    if qtype == QuestionType.SINGLE_CHOICE:
        if isinstance(answer, list) or isinstance(correct, list):
            return False
        return _normalize_key(answer) == _normalize_key(correct)

    if qtype == QuestionType.MULTI_CHOICE:
        if not isinstance(answer, list):
            return False
        expected = correct if isinstance(correct, list) else [correct]
        return {_normalize_key(a) for a in answer} == {_normalize_key(c) for c in expected}

    if qtype == QuestionType.FILL_IN_BLANK:
        if not isinstance(answer, str):
            return False
        return answer.strip() == str(correct).strip()

    return False


def _percentage(earned: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return round(earned / total * 100.0, 2)


def score_attempt(
    test: Test,
    answers: Mapping[int, Any],
    manual_grades: Optional[Mapping[str, float]] = None,
) -> ScoreResult:
    """Score answer values against the test's correct answers.

    ``answers`` maps question id to the submitted answer value. Missing
    answers score 0. Free-text and speaking questions only earn points
    through ``manual_grades`` (question id as string -> points); answered ones
    without a grade leave the result PENDING_REVIEW.
    """
    manual_grades = manual_grades or {}
    result = ScoreResult()

    for section in test.sections:
        section_score = SectionScore(section_id=section.id, section_name=section.name)

        for question in section.questions:
            points = float(question.points or 0)
            section_score.total_questions += 1
            section_score.total_points += points

            answer = answers.get(question.id)

            if question.question_type in MANUALLY_GRADED_TYPES:
                grade = manual_grades.get(str(question.id))
                if grade is not None:
                    awarded = min(max(float(grade), 0.0), points)
                    section_score.earned_points += awarded
                    if points > 0 and awarded >= points:
                        section_score.correct_answers += 1
                elif answer is not None:
                    section_score.pending_review += 1
                continue

            if is_correct(question, answer):
                section_score.earned_points += points
                section_score.correct_answers += 1

        section_score.percentage = _percentage(section_score.earned_points, section_score.total_points)

        result.section_scores.append(section_score)
        result.total_points += section_score.total_points
        result.earned_points += section_score.earned_points
        result.correct_answers += section_score.correct_answers
        if section_score.pending_review:
            result.grading_status = GradingStatus.PENDING_REVIEW

    result.percentage = _percentage(result.earned_points, result.total_points)

    # Normalize to the test's declared scale; raw points when none is declared
    if test.score_scale and result.total_points > 0:
        result.overall_score = round(result.earned_points / result.total_points * test.score_scale, 2)
    else:
        result.overall_score = result.earned_points

    if test.passing_score is not None:
        result.passed = result.percentage >= test.passing_score

    return result
