"""
Unit Tests for the Lottery Service

Tests cover:
1. Claim flow (pool update, claim record, wallet credit, statistics)
2. Idempotent repeat claims
3. Depletion boundary and last-claimant settlement
4. Pool conservation, including under concurrent claims
5. Lazy pool initialization and error cases
"""

import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from docstore import DocumentStore, RetryConfig
from flyers.errors import FlyerBudgetMissingError, FlyerNotFoundError
from flyers.models import FLYERS, CreateFlyerRequest, FlyerType, TargetBudget
from flyers.service import FlyerService
from flyers.statistics import get_month_statistics
from ledger.models import TransactionType
from ledger.service import (
    IdempotencyKeyInUseError,
    LedgerService,
    ReservedIdempotencyKeyError,
    WalletNotFoundError,
)
from lottery.models import AlreadyClaimed, Claimed, PoolDepleted
from lottery.service import LotteryService, PoolNotProvisionedError


# Test constants
NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
COMPANY_ID = "company-acme"


class MidpointRandom(random.Random):
    """Always draws the middle of the requested range."""

    def random(self):
        return 0.5


@dataclass
class Env:
    store: DocumentStore
    ledger: LedgerService
    flyers: FlyerService
    lottery: LotteryService
    flyer_id: str

    def add_user(self, user_id: str) -> str:
        self.ledger.create_wallet(user_id)
        return user_id


def make_env(
    budget=60,
    rng: Optional[random.Random] = None,
    company_id: Optional[str] = COMPANY_ID,
    lazy_pool_init: bool = True,
) -> Env:
    store = DocumentStore(RetryConfig(max_attempts=200, base_delay=0.0005, max_delay=0.005))
    ledger = LedgerService(store, clock=lambda: NOW)
    flyers = FlyerService(store, ledger, clock=lambda: NOW)
    lottery = LotteryService(
        store,
        ledger,
        rng=rng or MidpointRandom(),
        clock=lambda: NOW,
        lazy_pool_init=lazy_pool_init,
    )
    flyer = flyers.create_flyer(
        CreateFlyerRequest(
            type=FlyerType.LEAFLET,
            target_budget=TargetBudget(budget=Decimal(str(budget))),
            data={"title": "Spring sale"},
        ),
        company_id=company_id,
    )
    return Env(store, ledger, flyers, lottery, flyer.flyer_id)


class TestClaimFlow:
    """Tests for a single successful claim."""

    def test_first_claim(self):
        """Test that a claim updates pool, claim record and wallet together."""
        env = make_env()
        user = env.add_user("user-1")

        outcome = env.lottery.claim(user, env.flyer_id)

        assert isinstance(outcome, Claimed)
        claim = outcome.claim
        assert claim.claim_number == 1
        assert claim.reward > 0
        assert claim.remaining_after == Decimal("38.4") - claim.reward
        assert outcome.max_users == 5
        assert outcome.avg_money_per_user == Decimal("38.4") / 5

        pool = env.lottery.get_pool(env.flyer_id)
        assert pool.claims == 1
        assert pool.remaining == claim.remaining_after

        assert env.lottery.get_claim(env.flyer_id, user) == claim

        wallet = env.ledger.get_wallet(user)
        assert wallet.balance == claim.reward
        assert wallet.version == 2

    def test_claim_is_journaled_in_ledger(self):
        """Test that the wallet credit appears as an ADD transaction."""
        env = make_env()
        user = env.add_user("user-1")

        outcome = env.lottery.claim(user, env.flyer_id)

        records = env.ledger.list_transactions(user)
        assert len(records) == 1
        assert records[0].type == TransactionType.ADD
        assert records[0].amount == outcome.claim.reward
        assert records[0].idempotency_key == f"lottery:{env.flyer_id}"
        assert records[0].new_balance == env.ledger.get_balance(user)

    def test_statistics_rollup(self):
        """Test that flyer creation and claims are counted for the company month."""
        env = make_env()
        rewards = []
        for i in range(2):
            outcome = env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id)
            rewards.append(outcome.claim.reward)

        stats = get_month_statistics(env.store, COMPANY_ID, 2025, 3)
        assert stats.flyer_count == 1
        assert stats.total_max_users == 5
        assert stats.total_event_money == Decimal("48")
        assert stats.claim_count == 2
        assert stats.total_reward == sum(rewards)

    def test_flyer_without_company(self):
        """Test that claims on unowned flyers skip statistics."""
        env = make_env(company_id=None)

        outcome = env.lottery.claim(env.add_user("user-1"), env.flyer_id)

        assert isinstance(outcome, Claimed)
        assert get_month_statistics(env.store, COMPANY_ID, 2025, 3) is None


class TestLedgerKeys:
    """Tests for the ledger key a claim credits under."""

    def test_client_cannot_reuse_claim_key(self):
        """Test that a top-up after a claim neither replays nor hides the credit."""
        env = make_env()
        user = env.add_user("user-1")
        reward = env.lottery.claim(user, env.flyer_id).claim.reward

        with pytest.raises(ReservedIdempotencyKeyError):
            env.ledger.add_tokens(user, 100, f"lottery:{env.flyer_id}")
        result = env.ledger.add_tokens(user, 100, f"topup-{env.flyer_id}")

        assert result.replayed is False
        assert env.ledger.get_balance(user) == reward + 100

    def test_recorded_key_blocks_claim(self):
        """Test that a claim never writes a second record under an existing key."""
        env = make_env()
        user = env.add_user("user-1")
        key = f"lottery:{env.flyer_id}"
        env.ledger.grant_tokens(user, 5, key)

        with pytest.raises(IdempotencyKeyInUseError):
            env.lottery.claim(user, env.flyer_id)

        records = env.ledger.list_transactions(user)
        assert [r.idempotency_key for r in records] == [key]
        assert env.ledger.get_balance(user) == Decimal("5")
        assert env.lottery.get_pool(env.flyer_id).claims == 0
        assert env.lottery.get_claim(env.flyer_id, user) is None

    def test_at_most_one_record_per_key(self):
        """Test that every ledger record of a claimant has a distinct key."""
        env = make_env()
        user = env.add_user("user-1")
        env.ledger.add_tokens(user, 10, "topup-1")
        env.lottery.claim(user, env.flyer_id)
        env.lottery.claim(user, env.flyer_id)

        keys = [r.idempotency_key for r in env.ledger.list_transactions(user)]
        assert sorted(keys) == sorted(["topup-1", f"lottery:{env.flyer_id}"])


class TestIdempotency:
    """Tests for repeat claims by the same user."""

    def test_repeat_claim_returns_prior_result(self):
        """Test that a second claim returns the first result and mutates nothing."""
        env = make_env()
        user = env.add_user("user-1")

        first = env.lottery.claim(user, env.flyer_id)
        second = env.lottery.claim(user, env.flyer_id)

        assert isinstance(second, AlreadyClaimed)
        assert second.claim == first.claim
        assert second.max_users == 5

        pool = env.lottery.get_pool(env.flyer_id)
        assert pool.claims == 1
        assert pool.remaining == first.claim.remaining_after
        assert env.ledger.get_balance(user) == first.claim.reward
        assert len(env.ledger.list_transactions(user)) == 1

    def test_already_claimed_survives_depletion(self):
        """Test that an earlier claimant still sees their claim once the pool is empty."""
        env = make_env()
        early = env.add_user("early")
        first = env.lottery.claim(early, env.flyer_id)
        for i in range(4):
            env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id)

        again = env.lottery.claim(early, env.flyer_id)

        assert isinstance(again, AlreadyClaimed)
        assert again.claim.reward == first.claim.reward


class TestDepletion:
    """Tests for pool exhaustion."""

    def test_depletion_boundary(self):
        """Test that exactly max_users claimants are paid and the next is turned away."""
        env = make_env()
        outcomes = [env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id) for i in range(5)]

        assert all(isinstance(o, Claimed) for o in outcomes)
        assert [o.claim.claim_number for o in outcomes] == [1, 2, 3, 4, 5]

        late = env.add_user("late")
        outcome = env.lottery.claim(late, env.flyer_id)

        assert isinstance(outcome, PoolDepleted)
        assert outcome.max_users == 5
        assert env.lottery.get_claim(env.flyer_id, late) is None
        assert env.ledger.get_balance(late) == Decimal("0")
        assert env.ledger.list_transactions(late) == []

    def test_last_claimant_takes_remaining(self):
        """Test that the final claimant empties the pool."""
        env = make_env()
        for i in range(4):
            env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id)
        remaining_before = env.lottery.get_pool(env.flyer_id).remaining

        outcome = env.lottery.claim(env.add_user("last"), env.flyer_id)

        assert outcome.claim.reward == remaining_before
        assert outcome.claim.remaining_after == Decimal("0")
        assert env.lottery.get_pool(env.flyer_id).remaining == Decimal("0")

    def test_conservation_at_every_step(self):
        """Test that paid rewards always equal lottery money minus what remains."""
        env = make_env()
        paid = Decimal("0")
        for i in range(6):
            outcome = env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id)
            if isinstance(outcome, Claimed):
                paid += outcome.claim.reward
            pool = env.lottery.get_pool(env.flyer_id)
            assert paid == pool.lottery_money - pool.remaining
            assert pool.remaining >= 0

    def test_reference_budget_scenario(self):
        """Test the 5000 budget: 416 paid claimants, the last one settling the pool."""
        env = make_env(budget=5000)
        avg = Decimal("3200") / 416
        rewards = []
        for i in range(416):
            outcome = env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id)
            assert isinstance(outcome, Claimed)
            rewards.append(outcome.claim.reward)

        for reward in rewards[:-1]:
            assert avg * Decimal("0.5") - Decimal("0.01") <= reward <= avg * Decimal("1.5")
        assert sum(rewards) == Decimal("3200")
        assert env.lottery.get_pool(env.flyer_id).remaining == Decimal("0")

        outcome = env.lottery.claim(env.add_user("user-417"), env.flyer_id)
        assert isinstance(outcome, PoolDepleted)

    def test_random_draws_respect_bounds(self):
        """Test reward bounds and conservation with a real seeded generator."""
        env = make_env(budget=5000, rng=random.Random(2024))
        params_avg = Decimal("3200") / 416
        paid = Decimal("0")
        for i in range(430):
            outcome = env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id)
            if not isinstance(outcome, Claimed):
                continue
            pool = env.lottery.get_pool(env.flyer_id)
            remaining_before = pool.remaining + outcome.claim.reward
            assert outcome.claim.reward <= remaining_before
            if outcome.claim.claim_number < 416 and pool.remaining > 0:
                assert outcome.claim.reward <= params_avg * Decimal("1.5")
            paid += outcome.claim.reward

        pool = env.lottery.get_pool(env.flyer_id)
        assert pool.remaining == Decimal("0")
        assert pool.claims <= pool.max_users
        assert paid == Decimal("3200")


class TestDeterminism:
    def test_same_seed_same_rewards(self):
        """Test that an injected seeded generator makes rewards reproducible."""
        runs = []
        for _ in range(2):
            env = make_env(rng=random.Random(7))
            runs.append([
                env.lottery.claim(env.add_user(f"user-{i}"), env.flyer_id).claim.reward
                for i in range(3)
            ])

        assert runs[0] == runs[1]


class TestConcurrency:
    def test_concurrent_claims(self):
        """Test many users racing for a small pool."""
        env = make_env()
        users = [env.add_user(f"user-{i}") for i in range(10)]
        outcomes = []
        lock = threading.Lock()

        def worker(user_id):
            outcome = env.lottery.claim(user_id, env.flyer_id)
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker, args=(u,)) for u in users]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        claimed = [o for o in outcomes if isinstance(o, Claimed)]
        depleted = [o for o in outcomes if isinstance(o, PoolDepleted)]
        assert len(claimed) == 5
        assert len(depleted) == 5
        assert sorted(o.claim.claim_number for o in claimed) == [1, 2, 3, 4, 5]
        assert sum(o.claim.reward for o in claimed) == Decimal("38.4")

        pool = env.lottery.get_pool(env.flyer_id)
        assert pool.claims == 5
        assert pool.remaining == Decimal("0")
        assert sum(env.ledger.get_balance(u) for u in users) == Decimal("38.4")


class TestPoolProvisioning:
    """Tests for flyers whose pool document is missing."""

    def _legacy_flyer(self, env: Env) -> str:
        flyer_id = "legacy-flyer"
        env.store.create(FLYERS, flyer_id, {"type": "qr", "targetBudget": {"budget": 60}})
        return flyer_id

    def test_lazy_initialization(self):
        """Test that the first claim creates a missing pool from the flyer budget."""
        env = make_env()
        flyer_id = self._legacy_flyer(env)

        outcome = env.lottery.claim(env.add_user("user-1"), flyer_id)

        assert isinstance(outcome, Claimed)
        pool = env.lottery.get_pool(flyer_id)
        assert pool.max_users == 5
        assert pool.lottery_money == Decimal("38.4")
        assert pool.claims == 1
        assert pool.remaining == Decimal("38.4") - outcome.claim.reward

    def test_lazy_initialization_disabled(self):
        """Test that a missing pool fails fast when lazy init is off."""
        env = make_env(lazy_pool_init=False)
        flyer_id = self._legacy_flyer(env)
        user = env.add_user("user-1")

        with pytest.raises(PoolNotProvisionedError):
            env.lottery.claim(user, flyer_id)
        assert env.lottery.get_pool(flyer_id) is None
        assert env.ledger.get_balance(user) == Decimal("0")


class TestErrors:
    """Tests for caller and system errors."""

    def test_unknown_flyer(self):
        env = make_env()

        with pytest.raises(FlyerNotFoundError):
            env.lottery.claim(env.add_user("user-1"), "missing")

    def test_flyer_without_budget(self):
        """Test that a flyer lacking a budget is a data error, not an outcome."""
        env = make_env()
        env.store.create(FLYERS, "no-budget", {"type": "leaflet"})

        with pytest.raises(FlyerBudgetMissingError):
            env.lottery.claim(env.add_user("user-1"), "no-budget")

    def test_missing_wallet(self):
        """Test that users without a wallet cannot claim and the pool is untouched."""
        env = make_env()

        with pytest.raises(WalletNotFoundError):
            env.lottery.claim("ghost", env.flyer_id)
        assert env.lottery.get_pool(env.flyer_id).claims == 0

    def test_failure_leaves_no_partial_state(self):
        """Test that an error during the write phase rolls everything back."""
        env = make_env()
        user = env.add_user("user-1")

        def broken_credit(*args, **kwargs):
            raise RuntimeError("store unavailable")

        env.ledger.stage_credit = broken_credit

        with pytest.raises(RuntimeError):
            env.lottery.claim(user, env.flyer_id)

        assert env.lottery.get_pool(env.flyer_id).claims == 0
        assert env.lottery.get_claim(env.flyer_id, user) is None
        assert env.ledger.get_balance(user) == Decimal("0")
        assert get_month_statistics(env.store, COMPANY_ID, 2025, 3).claim_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
