from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import upload_routers
from contextlib import asynccontextmanager
from .db import create_db_and_tables

import logging
import os


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # run once when app starts. Make DB tables.
    await create_db_and_tables()
    yield

app = FastAPI(lifespan=lifespan)


# NOTE: include the exact origins used by the frontend dev server (no trailing slash)
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # which sites can call this API
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(upload_routers.router, prefix="/api")
