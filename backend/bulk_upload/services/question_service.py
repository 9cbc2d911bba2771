import logging
from typing import List

from ..schemas.question_schema import ParsedQuestion, QuestionData, QuestionType


logger = logging.getLogger("question_service")
logger.setLevel(logging.INFO)

ANSWER_INDEX = {"A": "1", "B": "2", "C": "3", "D": "4"}
DEFAULT_ANSWER_INDEX = "1"


def convert_to_question(parsed: ParsedQuestion) -> QuestionData:
    """
    Turn a parsed spreadsheet row into an insertable question.

    A row without any answer text is a numeric question and keeps its answer
    verbatim. Otherwise the letter is mapped to a 1-based index; an unknown
    letter falls back to "1" and is logged.
    """
    answer_choices = [
        choice
        for choice in (parsed.answer_a, parsed.answer_b, parsed.answer_c, parsed.answer_d)
        if choice != ""
    ]

    if not answer_choices:
        question_type = QuestionType.numeric
        correct_answer = parsed.correct_answer
    else:
        question_type = QuestionType.multiple_choice
        correct_answer = ANSWER_INDEX.get(parsed.correct_answer)
        if correct_answer is None:
            logger.warning(
                "Question %s has unrecognized correct answer %r, defaulting to choice A",
                parsed.reference_id,
                parsed.correct_answer,
            )
            correct_answer = DEFAULT_ANSWER_INDEX

    return QuestionData(
        reference_id=parsed.reference_id,
        question_type=question_type,
        question_text=parsed.question_text,
        instructions=parsed.instructions,
        explanation=parsed.explanation,
        difficulty=parsed.difficulty,
        tag=parsed.tag,
        answer_choices=answer_choices,
        correct_answer=correct_answer,
    )


def convert_parsed_questions(parsed_questions: List[ParsedQuestion]) -> List[QuestionData]:
    return [convert_to_question(p) for p in parsed_questions]
