import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vidrelay.config.settings import config
from vidrelay.core.logging import log_error, log_warning
from vidrelay.i18n import i18n
from vidrelay.utils.locale import get_locale

logger = logging.getLogger(__name__)


class VidRelayError(Exception):
    """
    Base class for failures that reach the HTTP boundary.
    `reason` is internal detail for logs; the client sees the localized
    message for `message_key`.
    """
    status_code = 500
    message_key = "error.internal"

    def __init__(self, reason: str = "", **context: Any):
        super().__init__(reason or self.message_key)
        self.reason = reason
        self.context = context

    def message(self, locale: Optional[str] = None) -> str:
        return i18n.get(self.message_key, locale=locale, reason=self.reason, **self.context)


class ValidationError(VidRelayError):
    status_code = 400
    message_key = "error.invalid_request"


class UnsupportedUrl(ValidationError):
    message_key = "error.unsupported_url"


class InvalidFormat(ValidationError):
    message_key = "error.invalid_format"


class ExtractionFailed(VidRelayError):
    status_code = 502
    message_key = "error.extraction_failed"


class DownloadFailed(VidRelayError):
    status_code = 502
    message_key = "error.download_failed"

    def __init__(self, reason: str = "", hop: str = "extract", **context: Any):
        super().__init__(reason, **context)
        self.hop = hop


class FileMissing(DownloadFailed):
    status_code = 500
    message_key = "error.file_missing"

    def __init__(self, reason: str = "", **context: Any):
        super().__init__(reason, hop="io", **context)


class NotFound(VidRelayError):
    status_code = 404
    message_key = "error.not_found"


class Forbidden(VidRelayError):
    status_code = 403
    message_key = "error.forbidden"


class InternalError(VidRelayError):
    status_code = 500
    message_key = "error.internal"


def error_body(message: str, detail: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": True, "message": message}
    if detail and config.api.debug:
        body["detail"] = detail
    return body


async def handle_vidrelay_error(request: Request, exc: VidRelayError) -> JSONResponse:
    locale = get_locale(request.headers.get("accept-language"))
    hop = getattr(exc, "hop", None)
    summary = f"{type(exc).__name__}: {exc.reason or '-'}" + (f" (hop={hop})" if hop else "")
    if exc.status_code >= 500:
        log_error(request, summary)
    else:
        log_warning(request, summary)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message(locale), exc.reason),
    )


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    locale = get_locale(request.headers.get("accept-language"))
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        reason = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        reason = "malformed body"
    log_warning(request, f"Request validation failed: {reason}")
    return JSONResponse(
        status_code=400,
        content=error_body(i18n.get("error.invalid_request", locale=locale, reason=reason)),
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    locale = get_locale(request.headers.get("accept-language"))
    log_error(request, f"Unhandled error: {exc!r}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(i18n.get("error.internal", locale=locale), repr(exc)),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VidRelayError, handle_vidrelay_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)
