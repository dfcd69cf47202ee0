import logging
import random
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from docstore import DocumentStore, Transaction
from flyers.errors import FlyerBudgetMissingError, FlyerNotFoundError
from flyers.models import FLYERS, flyer_budget
from flyers.statistics import read_month_statistics, stage_claim_rewarded
from ledger.service import WALLETS, LedgerService, WalletNotFoundError

from .models import AlreadyClaimed, ClaimOutcome, Claimed, ClaimRecord, LotteryPool, PoolDepleted
from .pool import (
    LOTTERY,
    calculate_reward,
    claims_collection,
    compute_pool_parameters,
    is_depleted,
    new_pool_document,
)

logger = logging.getLogger(__name__)


class LotteryError(Exception):
    pass


class PoolNotProvisionedError(LotteryError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LotteryService:
    """
    Per-flyer reward lottery.

    Each user may claim once per flyer. A claim reads everything it needs
    (prior claim, pool, wallet, company statistics) before staging any
    write, then updates the pool, records the claim, credits the wallet and
    bumps the statistics in one commit. Concurrent claims on the same flyer
    collide on the pool document and are re-run by the store.
    """

    def __init__(
        self,
        store: DocumentStore,
        ledger: LedgerService,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lazy_pool_init: bool = True,
    ):
        self.store = store
        self.ledger = ledger
        self.rng = rng or random.Random()
        self.clock = clock or utcnow
        self.lazy_pool_init = lazy_pool_init

    def claim(self, user_id: str, flyer_id: str) -> ClaimOutcome:
        flyer = self.store.get(FLYERS, flyer_id)
        if not flyer.exists:
            raise FlyerNotFoundError(f"Flyer {flyer_id} not found")

        budget = flyer_budget(flyer.data)
        if budget is None:
            raise FlyerBudgetMissingError(f"Flyer {flyer_id} has no budget configured")

        params = compute_pool_parameters(budget)
        company_id = flyer.get("companyId")
        wallet_ref = self.ledger.find_active_wallet(user_id)
        claims_path = claims_collection(flyer_id)
        credit_key = f"lottery:{flyer_id}"

        def body(transaction: Transaction) -> ClaimOutcome:
            now = self.clock()

            # --- reads ---
            existing = transaction.get(claims_path, user_id)
            if existing.exists:
                return AlreadyClaimed(
                    claim=ClaimRecord.model_validate(existing.data),
                    avg_money_per_user=params.avg_money_per_user,
                    max_users=params.max_users,
                )

            pool_doc = transaction.get(LOTTERY, flyer_id)
            if pool_doc.exists:
                state = pool_doc.data
            elif self.lazy_pool_init:
                state = new_pool_document(flyer_id, params, now)
            else:
                raise PoolNotProvisionedError(f"Lottery pool for flyer {flyer_id} is not provisioned")

            claims = int(state["claims"])
            max_users = int(state["maxUsers"])
            remaining = Decimal(state["remaining"])
            if is_depleted(claims, max_users, remaining):
                return PoolDepleted(
                    flyer_id=flyer_id,
                    avg_money_per_user=params.avg_money_per_user,
                    max_users=params.max_users,
                )

            wallet = transaction.get(WALLETS, wallet_ref.id)
            if not wallet.exists or not wallet.get("isActive"):
                raise WalletNotFoundError(f"Wallet not found for user {user_id}")

            credit_index = self.ledger.read_credit_index(transaction, user_id, credit_key)
            stats = read_month_statistics(transaction, company_id, now) if company_id else None

            # --- writes ---
            if not pool_doc.exists:
                transaction.set(LOTTERY, flyer_id, state)

            reward = calculate_reward(claims, max_users, remaining, params.avg_money_per_user, self.rng)
            claim_number = claims + 1
            remaining_after = max(Decimal("0"), remaining - reward)
            transaction.update(LOTTERY, flyer_id, {
                "claims": claim_number,
                "remaining": remaining_after,
                "updatedAt": now,
            })

            record = ClaimRecord(
                user_id=user_id,
                flyer_id=flyer_id,
                reward=reward,
                claimed_at=now,
                claim_number=claim_number,
                remaining_after=remaining_after,
            )
            transaction.create(claims_path, user_id, record.model_dump(by_alias=True))

            if reward > 0:
                self.ledger.stage_credit(
                    transaction,
                    wallet,
                    credit_index,
                    reward,
                    credit_key,
                    f"Lottery reward for flyer {flyer_id}",
                    now,
                )

            if stats is not None:
                stage_claim_rewarded(transaction, stats, reward, now)

            return Claimed(
                claim=record,
                avg_money_per_user=params.avg_money_per_user,
                max_users=max_users,
            )

        outcome = self.store.run_transaction(body)

        if isinstance(outcome, Claimed):
            logger.info(
                "User %s claimed %s from flyer %s (claim #%d, %s left)",
                user_id, outcome.claim.reward, flyer_id,
                outcome.claim.claim_number, outcome.claim.remaining_after,
            )
        elif isinstance(outcome, AlreadyClaimed):
            logger.info("User %s already claimed flyer %s", user_id, flyer_id)
        else:
            logger.info("Lottery for flyer %s is depleted; user %s got nothing", flyer_id, user_id)
        return outcome

    def get_pool(self, flyer_id: str) -> Optional[LotteryPool]:
        snapshot = self.store.get(LOTTERY, flyer_id)
        if not snapshot.exists:
            return None
        return LotteryPool.model_validate(snapshot.data)

    def get_claim(self, flyer_id: str, user_id: str) -> Optional[ClaimRecord]:
        snapshot = self.store.get(claims_collection(flyer_id), user_id)
        if not snapshot.exists:
            return None
        return ClaimRecord.model_validate(snapshot.data)
