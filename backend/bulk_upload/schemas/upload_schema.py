from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Literal

from .question_schema import QuestionData


UploadStage = Literal["questions", "test", "test_questions", "complete"]


class UploadProgress(BaseModel):
    stage: UploadStage
    current: int
    total: int
    message: str


class ModuleData(BaseModel):
    # position 1-4 decides the test section the questions are linked into
    module_number: int = Field(..., ge=1, le=4)
    questions: List[QuestionData] = Field(default_factory=list)


class BulkUploadRequest(BaseModel):
    title: str
    description: Optional[str] = ""
    modules: List[ModuleData]

    @field_validator("title")
    def title_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Please enter a test title")
        return v


class UploadResult(BaseModel):
    test_id: str
    total_questions: int


class ModulePreview(BaseModel):
    module_number: int
    filename: Optional[str] = None
    question_count: int
    skipped: int = 0
    questions: List[QuestionData]


class PreviewResponse(BaseModel):
    total: int
    modules: List[ModulePreview]
