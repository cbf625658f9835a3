from typing import Any

from testprep.errors import ValidationError
from testprep.models import Question, QuestionType
from testprep.services.catalog import option_keys

MAX_TEXT_ANSWER_LENGTH = 20000


def validate_answer(question: Question, answer: Any) -> Any:
    """Check an answer against the shape its question type expects.

    Returns the value to store. Raises ValidationError for a wrong shape or
    an option key the question does not offer.
    """
    qtype = question.question_type

    if qtype == QuestionType.SINGLE_CHOICE:
        if not isinstance(answer, str) or not answer.strip():
            raise ValidationError("Single-choice answers must be one option key")
        value = answer.strip().upper()
        keys = option_keys(question)
        if keys and value not in keys:
            raise ValidationError(f"'{value}' is not an option of this question")
        return value

    if qtype == QuestionType.MULTI_CHOICE:
        if not isinstance(answer, list) or not all(isinstance(item, str) for item in answer):
            raise ValidationError("Multi-choice answers must be a list of option keys")
        keys = option_keys(question)
        values = []
        for item in answer:
            item = item.strip().upper()
            if keys and item not in keys:
                raise ValidationError(f"'{item}' is not an option of this question")
            if item not in values:
                values.append(item)
        return values

    # Fill-in-blank, free text and speaking (transcript or recording URL)
    if not isinstance(answer, str):
        raise ValidationError(f"{qtype.value} answers must be text")
    if len(answer) > MAX_TEXT_ANSWER_LENGTH:
        raise ValidationError("Answer is too long")
    return answer


def validate_time_delta(seconds: int, upper_bound: int) -> int:
    if seconds is None:
        return 0
    if isinstance(seconds, bool) or not isinstance(seconds, int):
        raise ValidationError("Time spent must be a whole number of seconds")
    if seconds < 0:
        raise ValidationError("Time spent cannot be negative")
    if seconds > upper_bound:
        raise ValidationError(f"Time spent cannot exceed {upper_bound} seconds per update")
    return seconds
