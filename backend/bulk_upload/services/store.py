import logging
from typing import Any, Dict, Protocol

from sqlalchemy import inspect as sa_inspect, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.question_model import QuestionDB
from ..models.test_model import TestDB, TestSectionDB, TestQuestionDB


logger = logging.getLogger("store")
logger.setLevel(logging.INFO)


class StoreError(Exception):
    pass


class RecordStore(Protocol):
    """Insert/update only persistence used by the upload. No reads."""

    async def insert(self, collection: str, record: Dict[str, Any]) -> str:
        ...

    async def update(self, collection: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> None:
        ...


COLLECTIONS = {
    "questions": QuestionDB,
    "tests": TestDB,
    "test_sections": TestSectionDB,
    "test_questions": TestQuestionDB,
}


class SQLAlchemyStore:
    """
    RecordStore on top of an AsyncSession.

    Every write is committed on its own: a failed upload keeps the rows
    written before the failure.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _model(self, collection: str):
        model = COLLECTIONS.get(collection)
        if model is None:
            raise StoreError(f"Unknown collection: {collection}")
        return model

    async def insert(self, collection: str, record: Dict[str, Any]) -> str:
        model = self._model(collection)
        obj = model(**record)
        try:
            self.session.add(obj)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Error inserting into %s: %s", collection, e)
            raise StoreError(str(e)) from e

        pk = sa_inspect(model).primary_key[0].key
        return str(getattr(obj, pk))

    async def update(self, collection: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> None:
        model = self._model(collection)
        stmt = update(model).where(*[getattr(model, k) == v for k, v in filters.items()]).values(**patch)
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Error updating %s: %s", collection, e)
            raise StoreError(str(e)) from e
