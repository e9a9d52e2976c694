from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = structlog.get_logger(__name__)


class AppError(Exception):
    code = 'INTERNAL_ERROR'
    status_code = 500

    def __init__(self, message: str, *, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        body: dict = {'code': self.code, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return {'error': body}


class UnauthorizedError(AppError):
    code = 'UNAUTHORIZED'
    status_code = 401

    def __init__(self, message: str = 'Not authenticated') -> None:
        super().__init__(message)


class ForbiddenError(AppError):
    code = 'FORBIDDEN'
    status_code = 403

    def __init__(self, message: str = 'You do not have permission to perform this action') -> None:
        super().__init__(message)


class NotFoundError(AppError):
    code = 'NOT_FOUND'
    status_code = 404

    def __init__(self, resource: str) -> None:
        super().__init__(f'{resource} not found')
        self.resource = resource


class ValidationError(AppError):
    code = 'VALIDATION_ERROR'
    status_code = 400

    def __init__(self, message: str, *, field: str | None = None, details: list[dict] | None = None) -> None:
        if details is None and field is not None:
            details = [{'field': field, 'message': message}]
        super().__init__(message, details=details)


class InvalidTransitionError(ValidationError):
    status_code = 422

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f'Cannot transition from "{current}" to "{target}"', field='status')
        self.current = current
        self.target = target


class ConflictError(AppError):
    code = 'CONFLICT'
    status_code = 409


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                'field': '.'.join(str(part) for part in error['loc'] if part != 'body'),
                'message': error['msg'],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={'error': {'code': 'VALIDATION_ERROR', 'message': 'Invalid input', 'details': details}},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error('unhandled_api_error', path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={'error': {'code': 'INTERNAL_ERROR', 'message': 'An unexpected error occurred'}},
        )
