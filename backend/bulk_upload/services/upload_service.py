import logging
from typing import Callable, List, Optional, Sequence

from ..schemas.question_schema import QuestionData
from ..schemas.upload_schema import ModuleData, UploadProgress, UploadResult
from .store import RecordStore


logger = logging.getLogger("upload_service")
logger.setLevel(logging.INFO)

MAX_MODULES = 4
FULL_TEST_MODULES = 4
MATH_MODULES = (3, 4)

ProgressCallback = Callable[[UploadProgress], None]


class UploadError(Exception):
    """A store write failed. Rows written by earlier steps are left in place."""

    def __init__(self, message: str, stage: str, position: int):
        super().__init__(message)
        self.stage = stage
        self.position = position


def section_id_for(module_number: int) -> str:
    return f"TESTSECTION{module_number}"


def _notify(on_progress: Optional[ProgressCallback], stage: str, current: int, total: int, message: str) -> None:
    if on_progress is not None:
        on_progress(UploadProgress(stage=stage, current=current, total=total, message=message))


def build_modules(question_lists: Sequence[List[QuestionData]]) -> List[ModuleData]:
    """Number question lists 1..n in the order given, one module per uploaded file."""
    if len(question_lists) > MAX_MODULES:
        raise ValueError(f"At most {MAX_MODULES} modules can be uploaded, got {len(question_lists)}")
    return [
        ModuleData(module_number=idx + 1, questions=list(questions))
        for idx, questions in enumerate(question_lists)
    ]


async def upload_questions(
    store: RecordStore,
    questions: List[QuestionData],
    on_progress: Optional[ProgressCallback] = None,
) -> List[str]:
    question_ids: List[str] = []
    total = len(questions)

    for idx, question in enumerate(questions, start=1):
        _notify(on_progress, "questions", idx, total, f"Uploading question {idx} of {total}")
        try:
            question_id = await store.insert("questions", question.to_record())
        except Exception as e:
            logger.error("Error uploading question %s (%s): %s", idx, question.reference_id, e)
            raise UploadError(f"Failed to upload question {idx}: {e}", stage="questions", position=idx) from e
        if not question_id:
            raise UploadError(
                f"Failed to upload question {idx}: no question_id returned", stage="questions", position=idx
            )
        question_ids.append(question_id)

    return question_ids


async def create_test(
    store: RecordStore,
    title: str,
    description: Optional[str],
    is_full_test: bool,
    on_progress: Optional[ProgressCallback] = None,
) -> str:
    _notify(on_progress, "test", 1, 1, "Creating test entry...")
    record = {"title": title, "description": description, "is_full_test": is_full_test}
    try:
        test_id = await store.insert("tests", record)
    except Exception as e:
        logger.error("Error creating test: %s", e)
        raise UploadError(f"Failed to create test: {e}", stage="test", position=1) from e

    if not test_id:
        raise UploadError("Test created but no test_id returned", stage="test", position=1)
    return test_id


async def update_test_sections(store: RecordStore, module_numbers: List[int]) -> None:
    # math modules get desmos; a failure here never fails the upload
    for module_number in module_numbers:
        if module_number not in MATH_MODULES:
            continue
        section_id = section_id_for(module_number)
        try:
            await store.update(
                "test_sections",
                {"test_section_id": section_id},
                {"is_desmos_allowed": True, "is_math_section": True},
            )
        except Exception as e:
            logger.error("Error updating test section %s: %s", section_id, e)


async def upload_test_questions(
    store: RecordStore,
    test_questions: List[dict],
    on_progress: Optional[ProgressCallback] = None,
) -> None:
    total = len(test_questions)
    for idx, link in enumerate(test_questions, start=1):
        _notify(on_progress, "test_questions", idx, total, f"Linking question {idx} of {total}")
        try:
            await store.insert("test_questions", link)
        except Exception as e:
            logger.error("Error linking question %s: %s", idx, e)
            raise UploadError(f"Failed to link question {idx}: {e}", stage="test_questions", position=idx) from e


def _check_modules(modules: List[ModuleData]) -> None:
    if not modules:
        raise ValueError("Please upload at least one file")
    if len(modules) > MAX_MODULES:
        raise ValueError(f"At most {MAX_MODULES} modules can be uploaded, got {len(modules)}")
    numbers = [m.module_number for m in modules]
    if len(set(numbers)) != len(numbers):
        raise ValueError("Duplicate module numbers are not allowed")
    for number in numbers:
        if not 1 <= number <= MAX_MODULES:
            raise ValueError(f"Module number must be between 1 and {MAX_MODULES}, got {number}")


def _link_rows(modules: List[ModuleData], question_ids: List[str], test_id: str) -> List[dict]:
    # slice the flat id list back into modules, same order as the inserts
    rows = []
    order_counter = 1
    start = 0
    for module in modules:
        count = len(module.questions)
        for question_id in question_ids[start:start + count]:
            rows.append({
                "question_id": question_id,
                "test_section_id": section_id_for(module.module_number),
                "test_id": test_id,
                "order_in_test": order_counter,
            })
            order_counter += 1
        start += count
    return rows


async def upload_bulk_data(
    store: RecordStore,
    modules: List[ModuleData],
    title: str,
    description: Optional[str] = "",
    on_progress: Optional[ProgressCallback] = None,
) -> UploadResult:
    """
    Persist every module's questions as one new test.

    Steps run strictly one after another: insert all questions, insert the
    test, flag math sections (best effort), insert the test_questions links.
    The first failing write raises UploadError; nothing is rolled back, so a
    failure after the first step leaves orphaned questions (and test) behind.
    """
    if not title or not title.strip():
        raise ValueError("Please enter a test title")
    _check_modules(modules)

    ordered = sorted(modules, key=lambda m: m.module_number)
    all_questions = [q for module in ordered for q in module.questions]

    question_ids = await upload_questions(store, all_questions, on_progress)

    test_id = await create_test(
        store,
        title,
        description,
        is_full_test=len(ordered) == FULL_TEST_MODULES,
        on_progress=on_progress,
    )

    await update_test_sections(store, [m.module_number for m in ordered])

    links = _link_rows(ordered, question_ids, test_id)
    await upload_test_questions(store, links, on_progress)

    _notify(on_progress, "complete", len(links), len(links), "Upload complete!")
    logger.info("Uploaded test %s with %s questions", test_id, len(all_questions))

    return UploadResult(test_id=test_id, total_questions=len(all_questions))
