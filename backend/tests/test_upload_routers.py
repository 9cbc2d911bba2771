import json
from io import BytesIO
import pandas as pd
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from bulk_upload.app import app
from bulk_upload.db import Base, get_async_session, get_session_maker
from bulk_upload.models.question_model import QuestionDB
from bulk_upload.models.test_model import TestDB, TestSectionDB, TestQuestionDB
from .helpers import HEADERS, workbook_bytes

client = TestClient(app)

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def db(tmp_path):
    path = tmp_path / "api.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    with Session(sync_engine) as session:
        for n in range(1, 5):
            session.add(TestSectionDB(test_section_id=f"TESTSECTION{n}", name=f"Module {n}", duration_minutes=32))
        session.commit()

    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    async def override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    yield sync_engine
    app.dependency_overrides.clear()
    sync_engine.dispose()


def module_payload(number, count):
    return {
        "module_number": number,
        "questions": [
            {
                "reference_id": f"M{number}-Q{i}",
                "question_type": "multiple_choice",
                "question_text": "Pick one",
                "answer_choices": ["a", "b"],
                "correct_answer": "2",
            }
            for i in range(1, count + 1)
        ],
    }


def test_preview_wrong_file_format():
    response = client.post(
        "/api/bulk-upload/preview",
        files={"files": ("data.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["detail"]


def test_preview_missing_id_column():
    f = workbook_bytes(["title"], [["x"]])

    response = client.post(
        "/api/bulk-upload/preview",
        files={"files": ("questions.xlsx", f.getvalue(), XLSX)},
    )

    assert response.status_code == 400
    assert "title" in response.json()["detail"]


def test_preview_numbers_modules_by_file_order():
    first = workbook_bytes(HEADERS, [["Q1", "", "easy", "", "2+2?", "3", "4", "", "", "B", ""]])
    second = workbook_bytes(HEADERS, [
        ["Q2", "", "hard", "", "Type 7", "", "", "", "", "7", ""],
        ["", "", "", "", "skipped", "", "", "", "", "", ""],
    ])

    response = client.post(
        "/api/bulk-upload/preview",
        files=[
            ("files", ("reading.xlsx", first.getvalue(), XLSX)),
            ("files", ("math.xlsx", second.getvalue(), XLSX)),
        ],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    m1, m2 = body["modules"]
    assert (m1["module_number"], m1["filename"], m1["question_count"]) == (1, "reading.xlsx", 1)
    assert m1["questions"][0]["correct_answer"] == "2"
    assert m2["module_number"] == 2
    assert m2["skipped"] == 1
    assert m2["questions"][0]["question_type"] == "numeric"
    assert m2["questions"][0]["difficulty"] == "intense"


def test_preview_ods_file():
    f = BytesIO()
    pd.DataFrame([{"question_id": "Q1", "question": "2+2?", "option_1": "4", "correct_answer": "a"}]).to_excel(
        f, engine="odf", index=False
    )

    response = client.post(
        "/api/bulk-upload/preview",
        files={"files": ("module.ods", f.getvalue(), "application/vnd.oasis.opendocument.spreadsheet")},
    )

    assert response.status_code == 200
    question = response.json()["modules"][0]["questions"][0]
    assert question["reference_id"] == "Q1"
    assert question["answer_choices"] == ["4"]
    assert question["correct_answer"] == "1"


def test_preview_too_many_files():
    f = workbook_bytes(HEADERS, [["Q1"]]).getvalue()
    files = [("files", (f"m{i}.xlsx", f, XLSX)) for i in range(5)]

    response = client.post("/api/bulk-upload/preview", files=files)
    assert response.status_code == 400


def test_confirm_upload(db):
    payload = {
        "title": "Practice Exam 1",
        "description": "Full practice test",
        "modules": [module_payload(n, 2) for n in range(1, 5)],
    }

    response = client.post("/api/bulk-upload/confirm", json=payload)

    assert response.status_code == 201
    body = response.json()
    assert body["total_questions"] == 8

    with Session(db) as session:
        test = session.execute(select(TestDB)).scalar_one()
        assert test.test_id == body["test_id"]
        assert test.is_full_test is True
        assert len(session.execute(select(QuestionDB)).scalars().all()) == 8
        links = session.execute(select(TestQuestionDB).order_by(TestQuestionDB.order_in_test)).scalars().all()
        assert [link.order_in_test for link in links] == list(range(1, 9))
        assert links[-1].test_section_id == "TESTSECTION4"
        sections = session.execute(select(TestSectionDB).order_by(TestSectionDB.test_section_id)).scalars().all()
        assert [s.is_math_section for s in sections] == [False, False, True, True]
        assert [s.is_desmos_allowed for s in sections] == [False, False, True, True]


def test_confirm_rejects_blank_title(db):
    response = client.post("/api/bulk-upload/confirm", json={"title": " ", "modules": [module_payload(1, 1)]})
    assert response.status_code == 422


def test_confirm_rejects_missing_modules(db):
    response = client.post("/api/bulk-upload/confirm", json={"title": "Exam", "modules": []})

    assert response.status_code == 400
    with Session(db) as session:
        assert session.execute(select(QuestionDB)).scalars().all() == []


def test_confirm_stream(db):
    payload = {"title": "Exam", "modules": [module_payload(1, 1), module_payload(2, 1)]}

    response = client.post("/api/bulk-upload/confirm/stream", json=payload)

    assert response.status_code == 200
    events = [json.loads(line) for line in response.text.splitlines()]
    assert [e["stage"] for e in events] == [
        "questions", "questions", "test", "test_questions", "test_questions", "complete", "result",
    ]
    assert events[-1]["total_questions"] == 2


def test_confirm_stream_reports_errors(db):
    payload = {"title": "Exam", "modules": [module_payload(1, 1), module_payload(1, 1)]}

    response = client.post("/api/bulk-upload/confirm/stream", json=payload)

    events = [json.loads(line) for line in response.text.splitlines()]
    assert events == [{"stage": "error", "message": "Duplicate module numbers are not allowed"}]


def test_confirm_rejects_multiple_choice_without_choices(db):
    question = {"reference_id": "Q1", "question_type": "multiple_choice", "correct_answer": "1"}
    payload = {"title": "Exam", "modules": [{"module_number": 1, "questions": [question]}]}

    response = client.post("/api/bulk-upload/confirm", json=payload)

    assert response.status_code == 422
    with Session(db) as session:
        assert session.execute(select(QuestionDB)).scalars().all() == []
