from fastapi import FastAPI

from app.config import settings
from app.db import SessionLocal
from app.errors import install_error_handlers
from app.logging import RequestIdMiddleware, setup_logging
from app.routers import activity, customers, estimates, invoices, jobs, schedule, users
from app.security.headers import install_security_headers
from app.security.sessions import install_api_session_middleware
from app.services.permission_service import DEFAULT_PERMISSIONS, PermissionMatrix

API_PREFIX = '/api/v1'


def create_app(*, session_factory=None, permissions: PermissionMatrix | None = None) -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    app.state.session_factory = session_factory or SessionLocal
    app.state.permissions = permissions or DEFAULT_PERMISSIONS

    install_error_handlers(app)
    install_security_headers(app)
    install_api_session_middleware(app)
    app.add_middleware(RequestIdMiddleware)

    for module in (customers, jobs, schedule, estimates, invoices, activity, users):
        app.include_router(module.router, prefix=API_PREFIX)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    return app


app = create_app()
