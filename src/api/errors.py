import logging
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.rate_limit import RateLimitExceeded
from extraction.request_analyzer import RequestAnalysisError
from intake_ai.cancellation import OperationAborted
from integration.clickup_client import ClickUpAPIError, ClickUpConfigError
from llm.llm_client import LLMUnavailableError
from sync.project_sync import BackingSystemUnavailable

logger = logging.getLogger(__name__)

APP_ENV = os.getenv("APP_ENV", "production").strip().lower()

_DEFAULT_MESSAGES = {
    400: "Geçersiz istek.",
    404: "Kaynak bulunamadı.",
    405: "Method not allowed",
}


def error_response(
    status_code: int,
    message: str,
    debug: Any = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    body: Dict[str, Any] = {"error": message, **extra}
    if debug is not None and APP_ENV == "development":
        body["debug"] = debug
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _first_validation_problem(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return _DEFAULT_MESSAGES[400]
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"Eksik veya geçersiz alan: {location}" if location else _DEFAULT_MESSAGES[400]


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    logger.info(f"Rejected request to {request.url.path}: {problems}")
    return error_response(400, _first_validation_problem(exc), debug=problems)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else None
    if exc.status_code == 405 or not detail:
        detail = _DEFAULT_MESSAGES.get(exc.status_code, detail or "Hata")
    return error_response(exc.status_code, detail, headers=getattr(exc, "headers", None))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    headers = exc.result.headers()
    headers["Retry-After"] = str(exc.retry_after)
    return error_response(429, str(exc), headers=headers, retry_after=exc.retry_after)


async def aborted_handler(request: Request, exc: OperationAborted) -> JSONResponse:
    logger.info(f"Request to {request.url.path} aborted: {exc}")
    return error_response(409, "İstek iptal edildi.")


async def backing_unavailable_handler(request: Request, exc: BackingSystemUnavailable) -> JSONResponse:
    return error_response(503, str(exc), debug=repr(exc.__cause__))


async def clickup_config_handler(request: Request, exc: ClickUpConfigError) -> JSONResponse:
    return error_response(500, str(exc))


async def clickup_api_handler(request: Request, exc: ClickUpAPIError) -> JSONResponse:
    return error_response(500, str(exc), debug={"upstream_status": exc.status_code})


async def llm_unavailable_handler(request: Request, exc: LLMUnavailableError) -> JSONResponse:
    return error_response(500, "AI yapılandırması eksik. Lütfen sistem yöneticisi ile iletişime geçin.", debug=str(exc))


async def analysis_error_handler(request: Request, exc: RequestAnalysisError) -> JSONResponse:
    return error_response(500, str(exc), debug=repr(exc.__cause__))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return error_response(500, "Beklenmeyen bir hata oluştu.", debug=repr(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(OperationAborted, aborted_handler)
    app.add_exception_handler(BackingSystemUnavailable, backing_unavailable_handler)
    app.add_exception_handler(ClickUpConfigError, clickup_config_handler)
    app.add_exception_handler(ClickUpAPIError, clickup_api_handler)
    app.add_exception_handler(LLMUnavailableError, llm_unavailable_handler)
    app.add_exception_handler(RequestAnalysisError, analysis_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
