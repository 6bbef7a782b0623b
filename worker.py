import time
import signal

from dotenv import load_dotenv

load_dotenv()

from storefront.config import settings
from storefront.db import SessionLocal, create_all, engine
from storefront.logging_config import get_logger
from storefront.psp.dispatcher import PSPDispatcher
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore
from storefront.services.orchestrator import PaymentOrchestrator

logger = get_logger("storefront.worker")

_running = True


def _stop(signum, frame):
    global _running
    _running = False


def build_orchestrator() -> PaymentOrchestrator:
    return PaymentOrchestrator(
        CartService(CartStore(SessionLocal), max_quantity=settings.CART_MAX_QUANTITY),
        PSPDispatcher(settings),
        SessionLocal,
        intent_timeout_seconds=settings.PAYMENT_INTENT_TIMEOUT_SECONDS,
        expired_grace_seconds=settings.EXPIRED_GRACE_SECONDS,
    )


def start_worker():
    """
    Expire stale PENDING intents every EXPIRY_SWEEP_INTERVAL_SECONDS.

    Runs as its own process next to the API. Expiry only applies to intents
    still PENDING in the database, so an intent the API settled after the scan
    is left alone; intents it expires are still subject to the grace window.
    """
    logger.info("expiry_worker_started", interval_seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
    # Ensure tables exist
    create_all(engine)
    orchestrator = build_orchestrator()

    signal.signal(signal.SIGTERM, _stop)
    while _running:
        try:
            orchestrator.expire_stale_pending()
        except KeyboardInterrupt:
            logger.info("expiry_worker_stopping")
            break
        except Exception as e:
            logger.error("expiry_sweep_failed", error=str(e), exc_info=True)
        time.sleep(settings.EXPIRY_SWEEP_INTERVAL_SECONDS)


if __name__ == "__main__":
    start_worker()
