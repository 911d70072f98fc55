from __future__ import annotations

import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import settings
from .auth_service import AuthError, reset_current_principal, resolve_principal_from_headers, set_current_principal
from .container import AppContainer, build_app_container
from .logging_config import configure_logging
from .question_errors import QuestionPipelineError
from .request_context import REQUEST_ID, inbound_request_id
from .routes import admin_question_routes, misc_health_routes, question_bank_routes, teacher_ai_routes

_log = logging.getLogger(__name__)


def _error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": detail})


def _validation_detail(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg") or "Invalid value")
    return f"{field}: {message}" if field else message


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(400, _validation_detail(exc))

    @app.exception_handler(QuestionPipelineError)
    async def _question_pipeline_error(request: Request, exc: QuestionPipelineError) -> JSONResponse:
        # Upstream failures (502) are reported to clients as plain server errors.
        status_code = exc.status_code if exc.status_code < 500 else 500
        if status_code >= 500:
            _log.warning(
                "request failed path=%s status=%d error=%s detail=%s",
                request.url.path,
                exc.status_code,
                type(exc).__name__,
                exc.detail[:300],
            )
        return _error_response(status_code, exc.detail)

    @app.exception_handler(AuthError)
    async def _auth_error(request: Request, exc: AuthError) -> JSONResponse:
        return _error_response(exc.status_code, exc.detail)


def _install_request_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def _request_context(request: Request, call_next):
        request_id = inbound_request_id(request.headers.get("x-request-id", ""))
        rid_token = REQUEST_ID.set(request_id)
        try:
            try:
                principal = resolve_principal_from_headers(
                    request.headers,
                    path=request.url.path,
                    method=request.method,
                )
            except AuthError as exc:
                _log.info("auth rejected path=%s status=%d detail=%s", request.url.path, exc.status_code, exc.detail)
                response = _error_response(exc.status_code, exc.detail)
            else:
                principal_token = set_current_principal(principal)
                try:
                    response = await call_next(request)
                finally:
                    reset_current_principal(principal_token)
            response.headers["x-request-id"] = request_id
            return response
        finally:
            REQUEST_ID.reset(rid_token)


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    load_dotenv(override=False)
    configure_logging()
    container = container or build_app_container()

    app = FastAPI(title="Exam Paper Question API", version="0.1.0")
    app.state.container = container
    _install_request_middleware(app)
    # Added last so CORS headers also wrap auth rejections.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app)

    app.include_router(misc_health_routes.build_router(container))
    app.include_router(admin_question_routes.build_router(container))
    app.include_router(teacher_ai_routes.build_router(container))
    app.include_router(question_bank_routes.build_router(container))
    _log.info("exam paper api ready data_dir=%s", container.data_dir)
    return app


app = create_app()
