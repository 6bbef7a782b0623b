# storefront/main.py

from typing import Callable, Optional
from datetime import datetime

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ---------------------------------------------
# LOAD ENVIRONMENT VARIABLES
# ---------------------------------------------
load_dotenv()

from storefront.config import Settings, settings as default_settings
from storefront.db import SessionFactory, build_engine, build_session_factory, create_all
from storefront.errors import StorefrontError
from storefront.logging_config import get_logger
from storefront.middleware import request_id_middleware
from storefront.psp.adapter import PSPProvider
from storefront.psp.dispatcher import PSPDispatcher
from storefront.routers import cart, payments, callbacks, reports, maintenance, health
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore
from storefront.services.orchestrator import PaymentOrchestrator
from storefront.services.reporting import ReportingView
from storefront.services.webhook_service import WebhookLog

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
    dispatcher: Optional[PSPDispatcher] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Wire the services and routers into a FastAPI app. Tests pass their own
    session factory, dispatcher and clock.
    """
    settings = settings or default_settings

    if session_factory is None:
        engine = build_engine(settings.DATABASE_URL)
        create_all(engine)
        session_factory = build_session_factory(engine)

    dispatcher = dispatcher or PSPDispatcher(settings)
    cart_service = CartService(CartStore(session_factory), max_quantity=settings.CART_MAX_QUANTITY)
    orchestrator = PaymentOrchestrator(
        cart_service,
        dispatcher,
        session_factory,
        intent_timeout_seconds=settings.PAYMENT_INTENT_TIMEOUT_SECONDS,
        expired_grace_seconds=settings.EXPIRED_GRACE_SECONDS,
        clock=clock,
        default_currencies={PSPProvider.PAYPAL: settings.PAYPAL_DEFAULT_CURRENCY},
    )

    # ---------------------------------------------
    # APP INIT
    # ---------------------------------------------
    app = FastAPI(
        title="Storefront Backend API",
        version=settings.APP_VERSION,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.dispatcher = dispatcher
    app.state.cart_service = cart_service
    app.state.orchestrator = orchestrator
    app.state.reporting = ReportingView(session_factory)
    app.state.webhook_log = WebhookLog(session_factory)

    # ---------------------------------------------
    # MIDDLEWARE
    # ---------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_id_middleware)

    # ---------------------------------------------
    # ERRORS
    # ---------------------------------------------
    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        logger.info("request_rejected", error_code=exc.code, status_code=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"code": "invalid_argument", "message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        )

    # ---------------------------------------------
    # ROUTERS
    # ---------------------------------------------
    app.include_router(health.router)
    app.include_router(cart.router)
    app.include_router(payments.router)
    app.include_router(callbacks.router)
    app.include_router(reports.router)
    app.include_router(maintenance.router)

    @app.get("/")
    def root():
        return {"message": f"{settings.APP_NAME} is running"}

    return app


app = create_app()
