# codegraph_service/src/main.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from src.api.v1.codegraph import router as codegraph_router
from src.core.config import LOG_LEVEL
from src.core.database_session import dispose_engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    dispose_engine()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Code Graph Service", lifespan=lifespan)
    app.include_router(codegraph_router, prefix="/v1/codegraph")
    return app


app = create_app()
