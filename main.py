import argparse
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import CONFIG_DIR, load_config
from db.database import init_db
from models.validation import violations_from_errors
from routes import daily_plans, exams, jobs, learn, sets, voice
from utils.errors import SOMETHING_WENT_WRONG, LingoError, StorageError, ValidationError
from utils.logs import configure_logging, new_request_id, request_logger

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()  # copies the example config on first run
    configure_logging(config["logging"]["level"])
    init_db()
    yield


app = FastAPI(title="LingoCards", description="Flashcard language-learning service", lifespan=lifespan)

app.include_router(sets.router, prefix="/sets", tags=["sets"])
app.include_router(learn.router, prefix="/learn", tags=["learn"])
app.include_router(daily_plans.router, prefix="/daily-plans", tags=["daily-plans"])
app.include_router(jobs.router, prefix="/job", tags=["job"])
app.include_router(exams.router, prefix="/exams", tags=["exams"])
app.include_router(voice.router, prefix="/voice", tags=["voice"])


@app.middleware("http")
async def correlate_requests(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _error_body(exc: LingoError) -> dict:
    body = {"error": type(exc).__name__, "message": exc.message}
    if isinstance(exc, ValidationError):
        body["violations"] = exc.violations
    return body


@app.exception_handler(LingoError)
async def lingo_error_handler(request: Request, exc: LingoError):
    if isinstance(exc, StorageError):
        # details were logged where the failure happened
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "StorageError", "message": SOMETHING_WENT_WRONG},
        )
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    violations = violations_from_errors(exc.errors())
    message = violations[0]["message"] if violations else "invalid request"
    return JSONResponse(status_code=400, content=_error_body(ValidationError(message, violations)))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger = request_logger(getattr(request.state, "request_id", None), name="http")
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "message": SOMETHING_WENT_WRONG},
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="LingoCards service")
    parser.add_argument("--init", action="store_true", help="Initialize DB and config")
    parser.add_argument("--dev", action="store_true", help="Run in dev mode with reload")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    if args.init:
        load_config()
        init_db()
        print(f"DB initialized and config copied to {CONFIG_DIR}")
        raise SystemExit(0)
    uvicorn.run("main:app", host="127.0.0.1", port=args.port, reload=args.dev, log_level="info")
