import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

import config
from db import SessionDep, create_db_and_tables
from routers import admin, ai, auth, items, pages, swaps, users
from routers.items import search_catalog

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    create_db_and_tables()
    logger.info("ReWear started")
    yield


app = FastAPI(title="ReWear", lifespan=lifespan)

app.mount("/static", StaticFiles(directory=str(config.STATIC_DIR)), name="static")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": errors},
    )


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Server error"})


@app.get("/", response_class=HTMLResponse)
def read_root(request: Request, session: SessionDep):
    featured, _ = search_catalog(session, limit=8)
    return pages.templates.TemplateResponse(
        request,
        "index.html",
        {"items": featured},
    )


@app.get("/api/health")
def health():
    return {"status": "OK", "message": "ReWear API is running"}


app.include_router(auth.router)
app.include_router(items.router)
app.include_router(swaps.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(ai.router)

app.include_router(pages.router)
