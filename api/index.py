import logging
import os
import random
import sys
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.errors import add_error_handlers
from common.logging_config import configure_logging
from common.settings import Settings, settings as default_settings
from docstore import DocumentStore, RetryConfig
from flyers.api import router as flyer_router
from flyers.service import FlyerService
from ledger.api import router as payment_router
from ledger.service import LedgerService
from lottery.api import router as lottery_router
from lottery.service import LotteryService

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[DocumentStore] = None,
    rng: Optional[random.Random] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    config = config or default_settings
    configure_logging(config.LOG_LEVEL)

    store = store or DocumentStore(RetryConfig(
        max_attempts=config.TRANSACTION_MAX_ATTEMPTS,
        base_delay=config.TRANSACTION_RETRY_BASE_DELAY,
        max_delay=config.TRANSACTION_RETRY_MAX_DELAY,
    ))

    app = FastAPI(
        title=config.APP_NAME,
        description="Flyer lottery rewards and token wallet ledger",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_error_handlers(app)

    ledger_service = LedgerService(store, default_currency=config.DEFAULT_CURRENCY)
    app.state.store = store
    app.state.ledger_service = ledger_service
    app.state.lottery_service = LotteryService(
        store, ledger_service, rng=rng, lazy_pool_init=config.LOTTERY_LAZY_POOL_INIT
    )
    app.state.flyer_service = FlyerService(
        store, ledger_service, distribute_event_cost=config.EVENT_COST_DISTRIBUTION_ENABLED
    )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "flyer-rewards"}

    app.include_router(flyer_router, prefix="/api")
    app.include_router(payment_router, prefix="/api/payment")
    app.include_router(lottery_router, prefix="/api/lottery")

    logger.info("%s ready", config.APP_NAME)
    return app


app = create_app()

handler = Mangum(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
