import logging
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Callable, Optional

from docstore import DocumentStore, Transaction
from ledger.service import WALLETS, LedgerService, WalletNotFoundError
from lottery.pool import CENT, EVENT_COST_PERCENT, LOTTERY, compute_pool_parameters, new_pool_document

from .errors import FlyerNotFoundError
from .models import FLYERS, CreateFlyerRequest, Flyer
from .statistics import read_month_statistics, stage_flyer_created

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlyerService:
    def __init__(
        self,
        store: DocumentStore,
        ledger: LedgerService,
        clock: Optional[Callable[[], datetime]] = None,
        distribute_event_cost: bool = False,
    ):
        self.store = store
        self.ledger = ledger
        self.clock = clock or utcnow
        self.distribute_event_cost = distribute_event_cost

    def create_flyer(self, request: CreateFlyerRequest, company_id: Optional[str] = None) -> Flyer:
        """
        Create a flyer together with its lottery pool (same id) and count it
        in the owning company's monthly statistics, all in one commit.
        """
        params = compute_pool_parameters(request.target_budget.budget)
        flyer_id = self.store.new_id()

        def body(transaction: Transaction) -> dict:
            now = self.clock()
            stats = read_month_statistics(transaction, company_id, now) if company_id else None

            flyer_doc = {
                **request.data,
                "type": request.type,
                "targetBudget": request.target_budget.model_dump(by_alias=True),
                "companyId": company_id,
                "status": "active",
                "createdAt": now,
                "updatedAt": now,
            }
            transaction.create(FLYERS, flyer_id, flyer_doc)
            transaction.create(LOTTERY, flyer_id, new_pool_document(flyer_id, params, now))
            if stats is not None:
                stage_flyer_created(transaction, stats, params.max_users, params.event_money, now)
            return flyer_doc

        flyer_doc = self.store.run_transaction(body)
        logger.info(
            "Created %s flyer %s for company %s (budget %s, %d rewarded users)",
            request.type.value, flyer_id, company_id, params.pool, params.max_users,
        )

        if self.distribute_event_cost:
            self.distribute_event_cost_share(flyer_id, params.pool)

        return Flyer.model_validate({**flyer_doc, "flyerId": flyer_id})

    def distribute_event_cost_share(self, flyer_id: str, pool: Decimal) -> int:
        """
        Split the event-cost share of a flyer's budget equally across all
        users holding exactly one active wallet. Returns the number of
        wallets credited.

        Each credit is keyed on the flyer, so re-running the distribution
        never pays the same user twice.
        """
        wallets = self.store.query(WALLETS, {"isActive": True})
        wallet_counts = Counter(wallet.get("userId") for wallet in wallets)

        # Users with several active wallets cannot be credited; leave them out of the split
        for user_id, count in wallet_counts.items():
            if count > 1:
                logger.warning("Skipping event share for user %s: %d active wallets", user_id, count)
        eligible = sorted(user_id for user_id, count in wallet_counts.items() if count == 1)
        if not eligible:
            return 0

        share = (pool * EVENT_COST_PERCENT / len(eligible)).quantize(CENT, rounding=ROUND_FLOOR)
        if share <= 0:
            logger.info("Event share of flyer %s too small to split across %d users", flyer_id, len(eligible))
            return 0

        credited = 0
        for user_id in eligible:
            try:
                self.ledger.grant_tokens(
                    user_id,
                    share,
                    f"flyer:{flyer_id}:distribution",
                    f"Event share for flyer {flyer_id}",
                )
            except WalletNotFoundError:
                logger.warning("Skipping event share for user %s: no single active wallet", user_id)
                continue
            credited += 1

        logger.info("Distributed %s to %d wallets for flyer %s", share, credited, flyer_id)
        return credited

    def get_flyer(self, flyer_id: str) -> Flyer:
        snapshot = self.store.get(FLYERS, flyer_id)
        if not snapshot.exists:
            raise FlyerNotFoundError(f"Flyer {flyer_id} not found")
        return Flyer.model_validate({**snapshot.data, "flyerId": snapshot.id})
