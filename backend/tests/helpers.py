from collections import defaultdict
from io import BytesIO

from openpyxl import Workbook

from bulk_upload.schemas.question_schema import QuestionData
from bulk_upload.schemas.upload_schema import ModuleData


HEADERS = [
    "Question ID", "Tag", "Difficulty", "Instructions", "Question Text",
    "Answer A", "Answer B", "Answer C", "Answer D", "Correct Answer", "Explanation",
]


def bytesio_from_workbook(wb: Workbook) -> BytesIO:
    f = BytesIO()
    wb.save(f)
    f.seek(0)
    return f


def workbook_bytes(headers, rows) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(row)
    return bytesio_from_workbook(wb)


def make_question(reference_id, **kwargs) -> QuestionData:
    data = {
        "reference_id": reference_id,
        "question_type": "multiple_choice",
        "question_text": f"Question {reference_id}",
        "answer_choices": ["1", "2", "3", "4"],
        "correct_answer": "2",
    }
    data.update(kwargs)
    return QuestionData(**data)


def make_modules(*counts) -> list:
    modules = []
    for number, count in enumerate(counts, start=1):
        questions = [make_question(f"M{number}-Q{i}") for i in range(1, count + 1)]
        modules.append(ModuleData(module_number=number, questions=questions))
    return modules


class FakeStore:
    """In-memory RecordStore. `fail_on` maps a collection to the 1-based insert that should fail."""

    def __init__(self, fail_on=None, fail_updates=False):
        self.fail_on = fail_on or {}
        self.fail_updates = fail_updates
        self.rows = defaultdict(list)
        self.updates = []
        self.calls = []

    async def insert(self, collection, record):
        self.calls.append(("insert", collection))
        position = len(self.rows[collection]) + 1
        if self.fail_on.get(collection) == position:
            raise RuntimeError(f"{collection} insert rejected")
        record_id = f"{collection}-{position}"
        self.rows[collection].append({"id": record_id, **record})
        return record_id

    async def update(self, collection, filters, patch):
        self.calls.append(("update", collection))
        if self.fail_updates:
            raise RuntimeError("update rejected")
        self.updates.append((collection, filters, patch))
