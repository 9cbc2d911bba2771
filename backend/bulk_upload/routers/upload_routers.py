from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from typing import List
import asyncio
import json
import logging
import os
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import get_async_session, get_session_maker
from ..schemas.upload_schema import (
    BulkUploadRequest,
    ModulePreview,
    PreviewResponse,
    UploadProgress,
    UploadResult,
)
from ..services.excel_service import SpreadsheetFormatError, parse_excel
from ..services.question_service import convert_parsed_questions
from ..services.store import SQLAlchemyStore
from ..services.upload_service import MAX_MODULES, UploadError, build_modules, upload_bulk_data

router = APIRouter(prefix="/bulk-upload", tags=["Bulk Upload"])

logger = logging.getLogger("upload_routers")
logger.setLevel(logging.INFO)

ALLOWED_EXTENSIONS = {".xlsx", ".xlsm", ".xls", ".ods", ".csv"}


def _log_progress(progress: UploadProgress) -> None:
    logger.info("[%s] %s/%s %s", progress.stage, progress.current, progress.total, progress.message)


# Upload 1-4 files & Preview
@router.post("/preview", response_model=PreviewResponse)
async def preview_upload(files: List[UploadFile] = File(...)):
    # one file per module, numbered by position
    if len(files) > MAX_MODULES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Upload at most {MAX_MODULES} files, got {len(files)}.",
        )

    question_lists = []
    parse_results = []
    for file in files:
        file_extension = os.path.splitext(file.filename or "")[1].lower()
        if file_extension not in ALLOWED_EXTENSIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid file extension for {file.filename}. Only {sorted(ALLOWED_EXTENSIONS)} are allowed.",
            )
        try:
            result = parse_excel(file.file, file.filename)
        except SpreadsheetFormatError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{file.filename}: {e}")

        parse_results.append(result)
        question_lists.append(convert_parsed_questions(result.questions))

    modules = build_modules(question_lists)
    previews = [
        ModulePreview(
            module_number=module.module_number,
            filename=file.filename,
            question_count=len(module.questions),
            skipped=result.skipped,
            questions=module.questions,
        )
        for module, file, result in zip(modules, files, parse_results)
    ]
    return PreviewResponse(total=sum(p.question_count for p in previews), modules=previews)


# Confirm Upload
@router.post("/confirm", response_model=UploadResult, status_code=status.HTTP_201_CREATED)
async def confirm_upload(
    payload: BulkUploadRequest,
    session: AsyncSession = Depends(get_async_session),
):
    store = SQLAlchemyStore(session)
    try:
        return await upload_bulk_data(
            store,
            payload.modules,
            payload.title,
            payload.description,
            on_progress=_log_progress,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UploadError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


async def _upload_events(payload: BulkUploadRequest, session_maker: async_sessionmaker):
    queue: asyncio.Queue = asyncio.Queue()

    async def run():
        async with session_maker() as session:
            try:
                result = await upload_bulk_data(
                    SQLAlchemyStore(session),
                    payload.modules,
                    payload.title,
                    payload.description,
                    on_progress=queue.put_nowait,
                )
                await queue.put({"stage": "result", **result.model_dump()})
            except (ValueError, UploadError) as e:
                await queue.put({"stage": "error", "message": str(e)})
            finally:
                await queue.put(None)

    task = asyncio.create_task(run())
    while True:
        item = await queue.get()
        if item is None:
            break
        if isinstance(item, UploadProgress):
            item = item.model_dump()
        yield json.dumps(item) + "\n"
    await task


@router.post("/confirm/stream")
async def confirm_upload_stream(
    payload: BulkUploadRequest,
    session_maker: async_sessionmaker = Depends(get_session_maker),
):
    # progress events as newline delimited JSON, last line is "result" or "error"
    return StreamingResponse(_upload_events(payload, session_maker), media_type="application/x-ndjson")
