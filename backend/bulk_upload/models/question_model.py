from bulk_upload.db import Base
import uuid
from sqlalchemy import Column, String, Text, Enum, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB


class QuestionDB(Base):
    __tablename__ = "questions"

    question_id = Column(Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    # spreadsheet supplied id, never deduplicated
    reference_id = Column(String, nullable=False)
    question_type = Column(Enum('multiple_choice', 'numeric', name='question_type'), nullable=False)
    question_text = Column(Text, nullable=False, default="")
    instructions = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)
    # free text: the "hard" -> "intense" substitution can produce values outside easy/medium/intense
    difficulty = Column(String, nullable=False, default="medium")
    tag = Column(String, nullable=True)
    answer_choices = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    correct_answer = Column(String, nullable=False, default="")
