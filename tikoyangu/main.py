import asyncio
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from fastapi.responses import JSONResponse
import structlog
from tikoyangu.api.routes import admin, mpesa, tickets
from tikoyangu.core.config import settings
from tikoyangu.core.documents import TicketDocumentRenderer
from tikoyangu.core.email import EmailChannel, SmtpEmailChannel
from tikoyangu.core.errors import TicketingError
from tikoyangu.core.logging import configure_logging
from tikoyangu.core.mpesa import MpesaGateway, PaymentGateway
from tikoyangu.core.sms import SmsChannel, TwilioSmsChannel
from tikoyangu.database import SessionLocal, init_db
from tikoyangu.schemas.CommonResponse import ApiResponse
from tikoyangu.services.confirmation import ConfirmationPipeline
from tikoyangu.services.sweep import run_pending_sweep


logger = structlog.get_logger(__name__)


def format_errors(errors):
    messages = []
    for e in errors:
        msg = e.get("msg", "Invalid input")
        messages.append(msg)
    return messages




async def ticketing_exception_handler(request: Request, exc: TicketingError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ApiResponse(
            success=False,
            statusCode=exc.status_code,
            message=exc.message,
            data=None
        ).model_dump()
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ApiResponse(
            success=False,
            statusCode=status.HTTP_400_BAD_REQUEST,
            message="Validation failed",
            data={"errors": format_errors(exc.errors())}
        ).model_dump()
    )


async def pydantic_validation_exception_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ApiResponse(
            success=False,
            statusCode=status.HTTP_400_BAD_REQUEST,
            message="Validation failed",
            data={"errors": format_errors(exc.errors())}
        ).model_dump()
    )




@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    sweep_task = None
    if settings.PENDING_SWEEP_INTERVAL_MINUTES > 0:
        sweep_task = asyncio.create_task(run_pending_sweep(
            SessionLocal,
            interval=timedelta(minutes=settings.PENDING_SWEEP_INTERVAL_MINUTES),
            older_than=timedelta(minutes=settings.PENDING_STALE_AFTER_MINUTES),
        ))

    yield

    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task
    app.state.gateway.close()
    app.state.sms.close()
    logger.info("shutdown_complete")




def create_app(
    gateway: Optional[PaymentGateway] = None,
    email: Optional[EmailChannel] = None,
    sms: Optional[SmsChannel] = None,
    documents: Optional[TicketDocumentRenderer] = None,
) -> FastAPI:
    configure_logging()

    app = FastAPI(title="Tikoyangu ticketing", lifespan=lifespan)

    app.state.gateway = gateway or MpesaGateway.from_settings(settings)
    app.state.sms = sms or TwilioSmsChannel.from_settings(settings)
    app.state.pipeline = ConfirmationPipeline(
        email=email or SmtpEmailChannel.from_settings(settings),
        sms=app.state.sms,
        documents=documents or TicketDocumentRenderer(settings.BRAND_NAME, settings.CURRENCY),
    )

    app.add_exception_handler(TicketingError, ticketing_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(ValidationError, pydantic_validation_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tickets.router)
    app.include_router(mpesa.router)
    app.include_router(admin.router)

    @app.get("/root")
    async def root():
        return {"message": "Backend running..."}

    return app


app = create_app()
