import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from functools import wraps

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from gemini_proxy import __version__
from gemini_proxy.config import Settings
from gemini_proxy.errors import ConfigurationError, RequestValidationFailure, classify_error
from gemini_proxy.provider import GeminiClient
from gemini_proxy.schema import (
    GenerateResponse,
    build_generation_config,
    parse_generate_request,
)


logger = logging.getLogger("gemini_proxy")


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(log_dir: str | None = None) -> None:
    """Log to stderr, and to ``<log_dir>/gemini_proxy.log`` when a directory is given."""
    formatter = logging.Formatter(LOG_FORMAT)
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    if not log_dir:
        return
    log_file = os.path.abspath(os.path.join(log_dir, "gemini_proxy.log"))
    for h in logger.handlers:
        if isinstance(h, logging.FileHandler) and h.baseFilename == log_file:
            return
    os.makedirs(log_dir, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def track_time(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info("%s took %.2f ms", func.__name__, elapsed_ms)

    return wrapper


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return {}


def create_app(settings: Settings | None = None, client: GeminiClient | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Current working directory: %s", os.getcwd())
        logger.info("API Key Status: %s", "Present" if settings.api_key_present else "Missing")
        owns_client = client is None
        if owns_client:
            app.state.gemini_client = GeminiClient(settings)
        yield
        if owns_client:
            await app.state.gemini_client.aclose()

    app = FastAPI(title="Gemini Proxy", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    if client is not None:
        app.state.gemini_client = client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    static_dir = settings.static_dir
    index_file = os.path.join(static_dir, "index.html")
    if os.path.isdir(static_dir):
        app.mount("/static", StaticFiles(directory=static_dir), name="static")

    @app.get("/", include_in_schema=False)
    async def index():
        if not os.path.isfile(index_file):
            raise HTTPException(status_code=404)
        return FileResponse(index_file)

    @app.get("/ping")
    async def ping() -> dict:
        return {"message": "pong"}

    @app.post("/api/gemini", response_model=GenerateResponse)
    @track_time
    async def generate_text(request: Request):
        payload = await _read_json(request)
        try:
            gen_request = parse_generate_request(payload)
        except RequestValidationFailure as exc:
            logger.info("Rejected request: %s", exc.outcome.error_tag)
            return JSONResponse(status_code=exc.outcome.http_status, content=exc.outcome.to_body())

        gen_config = build_generation_config(gen_request)
        try:
            text = await request.app.state.gemini_client.generate(gen_request.prompt, gen_config)
        except Exception as e:
            outcome = classify_error(e)
            return JSONResponse(status_code=outcome.http_status, content=outcome.to_body())

        logger.info(
            "Generated response (prompt_len=%d, max_tokens=%d, temperature=%.3f)",
            len(gen_request.prompt),
            gen_config.max_output_tokens,
            gen_config.temperature,
        )
        return GenerateResponse(response=text)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Something went wrong!"})

    return app


def run() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_dir)
    try:
        settings.require_api_key()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    logger.info("Server is running on port %d", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
