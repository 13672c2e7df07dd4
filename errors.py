from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from observability import get_logger, get_request_id

log = get_logger("errors")

PROBLEM_JSON = "application/problem+json"


# ======================================================
#  EXCEPCIONES DE DOMINIO
# ======================================================
class AppError(Exception):
    status_code = 500
    title = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MassAssignmentError(AppError):
    """Se intentó asignar en bloque un atributo fuera de la lista ``__fillable__``."""

    status_code = 422
    title = "Guarded Attribute"

    def __init__(self, model: str, fields: list[str]):
        self.model = model
        self.fields = sorted(fields)
        super().__init__(f"{model}: atributos no asignables: {', '.join(self.fields)}")


class UniqueConstraintError(AppError):
    status_code = 409
    title = "Conflict"

    def __init__(self, model: str, field: str, value: Any):
        self.model = model
        self.field = field
        self.value = value
        super().__init__(f"{model}: ya existe un registro con {field}={value!r}")


class RecordNotFoundError(AppError):
    status_code = 404
    title = "Not Found"

    def __init__(self, model: str, key: Any):
        self.model = model
        self.key = key
        super().__init__(f"{model} {key} no encontrado")


class CastError(AppError):
    status_code = 422
    title = "Invalid Attribute"

    def __init__(self, attribute: str, value: Any, cast: str):
        self.attribute = attribute
        self.value = value
        self.cast = cast
        super().__init__(f"No se puede convertir {attribute}={value!r} a {cast}")


class FactoryExhaustedError(AppError):
    """La secuencia de valores únicos de una factory se agotó en esta corrida."""

    def __init__(self, sequence: str, capacity: int):
        self.sequence = sequence
        self.capacity = capacity
        super().__init__(f"Secuencia única '{sequence}' agotada ({capacity} valores)")


class ApiError(AppError):
    """Error estructurado del cliente HTTP. ``status_code == 0`` = fallo de red."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


# ======================================================
#  PROBLEM+JSON
# ======================================================
def _default_title(status_code: int) -> str:
    if status_code == 400:
        return "Bad Request"
    if status_code == 404:
        return "Not Found"
    if status_code == 405:
        return "Method Not Allowed"
    if status_code == 409:
        return "Conflict"
    if status_code == 422:
        return "Unprocessable Entity"
    if status_code >= 500:
        return "Internal Server Error"
    return "Error"


def problem_payload(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    errors: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": "about:blank",
        "title": title or _default_title(int(status_code)),
        "status": int(status_code),
    }
    if detail:
        payload["detail"] = str(detail)

    inst = str(getattr(request.url, "path", "") or "")
    if inst:
        payload["instance"] = inst

    rid = get_request_id()
    if rid:
        payload["requestId"] = rid

    if errors:
        payload["errors"] = errors
    return payload


def problem_response(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    errors: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    # Nunca filtrar detalles internos de errores 5xx en producción
    safe_detail = detail
    if int(status_code) >= 500 and config.is_production():
        safe_detail = None

    return JSONResponse(
        status_code=int(status_code),
        content=problem_payload(
            request=request,
            status_code=status_code,
            title=title,
            detail=safe_detail,
            errors=errors,
        ),
        media_type=PROBLEM_JSON,
    )


def _app_error_handler(request: Request, exc: AppError):
    errors = None
    if isinstance(exc, MassAssignmentError):
        errors = [{"field": f, "message": "not fillable"} for f in exc.fields]
    elif isinstance(exc, UniqueConstraintError):
        errors = [{"field": exc.field, "message": "already taken"}]
    elif isinstance(exc, CastError):
        errors = [{"field": exc.attribute, "message": f"expected {exc.cast}"}]
    return problem_response(
        request=request,
        status_code=exc.status_code or 500,
        title=exc.title,
        detail=exc.message,
        errors=errors,
    )


def _http_error_handler(request: Request, exc: StarletteHTTPException):
    return problem_response(request=request, status_code=exc.status_code, detail=str(exc.detail or ""))


def _validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
        for e in exc.errors()
    ]
    return problem_response(request=request, status_code=422, title="Validation Failed", errors=errors)


def _unhandled_error_handler(request: Request, exc: Exception):
    log.exception("unhandled_exception", method=request.method, path=request.url.path)
    return problem_response(request=request, status_code=500, detail=f"{type(exc).__name__}: {exc}")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
