"""HTTP 错误映射

统一错误信封: {"error": {"code": "...", "message": "..."}}

- 领域异常（ChaserError 子类）按 code 映射状态码
- 请求体校验失败由 FastAPI 的 422 改为 400 VALIDATION_ERROR
"""

import structlog
from chaser.core.exceptions import ChaserError
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

log = structlog.get_logger()

# ChaserError.code -> HTTP 状态码
ERROR_STATUS = {
    "TASK_NOT_FOUND": 404,
    "QUEUE_ENTRY_NOT_FOUND": 404,
    "TASK_ALREADY_COMPLETED": 409,
    "CALLBACK_CONFLICT": 409,
}

_PYDANTIC_VALUE_ERROR_PREFIX = "Value error, "


class UnauthorizedError(Exception):
    """入站请求鉴权失败"""

    def __init__(self, message: str = "Missing or invalid credentials") -> None:
        super().__init__(message)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        msg = str(err.get("msg", "Invalid value"))
        if msg.startswith(_PYDANTIC_VALUE_ERROR_PREFIX):
            msg = msg[len(_PYDANTIC_VALUE_ERROR_PREFIX):]
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return "; ".join(messages) or "Invalid request"


async def _chaser_error_handler(request: Request, exc: ChaserError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, 400)
    log.info(
        "request_rejected",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
    )
    return error_response(status_code, exc.code, str(exc))


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = _validation_message(exc)
    log.info("request_validation_failed", path=request.url.path, message=message)
    return error_response(400, "VALIDATION_ERROR", message)


async def _unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
    log.warning("request_unauthorized", path=request.url.path)
    return error_response(401, "UNAUTHORIZED", str(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChaserError, _chaser_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(UnauthorizedError, _unauthorized_handler)
