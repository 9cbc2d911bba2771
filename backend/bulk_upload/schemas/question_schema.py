from pydantic import BaseModel, Field, field_validator, ValidationInfo
from typing import List
import enum


class QuestionType(str, enum.Enum):
    """Enums for valid question types."""
    multiple_choice = "multiple_choice"
    numeric = "numeric"


class Difficulty(str, enum.Enum):
    easy = "easy"
    medium = "medium"
    intense = "intense"


class ParsedQuestion(BaseModel):
    """
    One spreadsheet row after header resolution and text clean-up.

    Every field is a plain string; nothing is validated here beyond the
    reference id being present, since the converter decides the question kind.
    """
    reference_id: str
    tag: str = ""
    difficulty: str = Difficulty.medium.value
    instructions: str = ""
    question_text: str = ""
    answer_a: str = ""
    answer_b: str = ""
    answer_c: str = ""
    answer_d: str = ""
    correct_answer: str = ""
    explanation: str = ""


class QuestionData(BaseModel):
    """
    Schema for a question ready to be inserted into the `questions` table.

    - multiple_choice: 1-4 answer choices, correct_answer is the 1-based index as a string.
    - numeric: no answer choices, correct_answer is the literal answer.
    """
    reference_id: str = Field(..., description="Identifier supplied by the spreadsheet.")
    question_type: QuestionType
    question_text: str = ""
    instructions: str = ""
    explanation: str = ""
    # usually easy/medium/intense, kept as text because "very hard" becomes "very intense"
    difficulty: str = Difficulty.medium.value
    tag: str = ""
    answer_choices: List[str] = Field(default_factory=list, max_length=4, validate_default=True)
    correct_answer: str = ""

    @field_validator("answer_choices")
    def choices_match_question_type(cls, v, info: ValidationInfo):
        q_type = info.data.get("question_type")
        if q_type == QuestionType.numeric and v:
            raise ValueError('Numeric questions cannot have answer choices.')
        if q_type == QuestionType.multiple_choice and not v:
            raise ValueError('Multiple choice questions need at least one answer choice.')
        return v

    def to_record(self) -> dict:
        record = self.model_dump()
        record["question_type"] = self.question_type.value
        return record
