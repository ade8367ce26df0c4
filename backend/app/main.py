import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api.routes.mails import router as mails_router
from app.api.routes.notifications import router as notifications_router
from app.core.config import settings
from app.core.errors import AuthenticationFailed, MailError, NotFound, ValidationFailed
from app.core.logging import setup_logging
from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.realtime.channel import DeliveryChannel
from app.realtime.socket import mount_socket_app
from app.services.notifications import NotificationService
from app.services.scheduler import PeriodicTrigger, notify_projects_starting_today

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (AuthenticationFailed, status.HTTP_401_UNAUTHORIZED),
)


def _status_for(exc: MailError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(start_scheduler: bool = settings.scheduler_enabled) -> FastAPI:
    app = FastAPI(title="Project Mail", version="0.1.0")

    channel = DeliveryChannel()
    app.state.channel = channel
    app.state.trigger = None

    app.include_router(mails_router)
    app.include_router(notifications_router)

    @app.exception_handler(MailError)
    async def _mail_error(request: Request, exc: MailError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"success": False, "code": exc.code, "message": exc.message},
        )

    @app.on_event("startup")
    def _startup() -> None:
        init_db()
        if start_scheduler:
            notifications = NotificationService(SessionLocal, channel)
            trigger = PeriodicTrigger(
                lambda: notify_projects_starting_today(notifications, SessionLocal),
                interval_seconds=settings.scheduler_interval_seconds,
                run_on_start=settings.scheduler_run_on_startup,
                name="project-start-notifications",
            )
            trigger.start()
            app.state.trigger = trigger

    @app.on_event("shutdown")
    def _shutdown() -> None:
        if app.state.trigger is not None:
            app.state.trigger.stop()
            app.state.trigger = None
        channel.close()
        logger.info("Real-time channel closed")

    @app.get("/health")
    def health():
        return {"status": "ok", "connected_users": len(channel.online_user_ids())}

    return app


setup_logging(settings.log_level)

app = create_app()

# uvicorn app.main:asgi_app  (serves both HTTP and /socket.io)
asgi_app = mount_socket_app(app, app.state.channel)
