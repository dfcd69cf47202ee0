import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from docstore import DocumentSnapshot, DocumentStore, Transaction

from .models import (
    TransactionType,
    TransactionStatus,
    TransactionRecord,
    TransactionResult,
    InsufficientBalance,
    Wallet,
)

logger = logging.getLogger(__name__)

WALLETS = "wallets"
TRANSACTIONS = "transactions"
IDEMPOTENCY_KEYS = "idempotency_keys"

DEFAULT_DESCRIPTIONS = {
    TransactionType.ADD: "Add tokens to wallet",
    TransactionType.DEDUCT: "Deduct tokens from wallet",
}


class LedgerServiceError(Exception):
    pass


class InvalidAmountError(LedgerServiceError):
    pass


class MissingIdempotencyKeyError(LedgerServiceError):
    pass


class WalletNotFoundError(LedgerServiceError):
    pass


class WalletExistsError(LedgerServiceError):
    pass


class TransactionNotFoundError(LedgerServiceError):
    pass


class ReservedIdempotencyKeyError(LedgerServiceError):
    pass


class IdempotencyKeyInUseError(LedgerServiceError):
    pass


# Keys under these prefixes are issued by the service itself (lottery
# credits, event-cost shares) and cannot be chosen by clients.
RESERVED_KEY_PREFIXES = ("lottery:", "flyer:")


def is_reserved_key(idempotency_key: str) -> bool:
    return idempotency_key.startswith(RESERVED_KEY_PREFIXES)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def idempotency_doc_id(user_id: str, idempotency_key: str) -> str:
    return f"{user_id}:{idempotency_key}"


def _to_amount(amount: Any) -> Decimal:
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError("Amount must be positive")
    return value


class LedgerService:
    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        default_currency: str = "TOKEN",
    ):
        self.store = store or DocumentStore()
        self.clock = clock or utcnow
        self.default_currency = default_currency

    # ---------- Wallets ----------

    def create_wallet(self, user_id: str, currency: Optional[str] = None) -> Wallet:
        """Provision the single active wallet of a newly registered user."""
        existing = self.store.query(WALLETS, {"userId": user_id, "isActive": True}, limit=1)
        if existing:
            raise WalletExistsError(f"User {user_id} already has an active wallet")

        now = self.clock()
        wallet = Wallet(
            wallet_id=self.store.new_id(),
            user_id=user_id,
            balance=Decimal("0"),
            currency=currency or self.default_currency,
            version=1,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self.store.create(WALLETS, wallet.wallet_id, wallet.model_dump(by_alias=True, exclude={"wallet_id"}))
        logger.info("Created wallet %s for user %s", wallet.wallet_id, user_id)
        return wallet

    def find_active_wallet(self, user_id: str) -> DocumentSnapshot:
        """Resolve the user's one active wallet; zero or several is an error."""
        wallets = self.store.query(WALLETS, {"userId": user_id, "isActive": True}, limit=2)
        if len(wallets) != 1:
            if wallets:
                logger.error("User %s has more than one active wallet", user_id)
            raise WalletNotFoundError(f"Wallet not found for user {user_id}")
        return wallets[0]

    def get_wallet(self, user_id: str) -> Wallet:
        snapshot = self.find_active_wallet(user_id)
        return Wallet.model_validate({**snapshot.data, "walletId": snapshot.id})

    def get_balance(self, user_id: str) -> Decimal:
        return self.get_wallet(user_id).balance

    # ---------- Mutations ----------

    def add_tokens(
        self,
        user_id: str,
        amount: Any,
        idempotency_key: str,
        description: Optional[str] = None,
    ) -> TransactionResult:
        self._check_client_key(idempotency_key)
        return self._apply(user_id, TransactionType.ADD, amount, idempotency_key, description)

    def deduct_tokens(
        self,
        user_id: str,
        amount: Any,
        idempotency_key: str,
        description: Optional[str] = None,
    ) -> Union[TransactionResult, InsufficientBalance]:
        self._check_client_key(idempotency_key)
        return self._apply(user_id, TransactionType.DEDUCT, amount, idempotency_key, description)

    def grant_tokens(
        self,
        user_id: str,
        amount: Any,
        idempotency_key: str,
        description: Optional[str] = None,
    ) -> TransactionResult:
        """Credit issued by the service itself under a reserved key."""
        if not is_reserved_key(idempotency_key):
            raise ReservedIdempotencyKeyError(
                f"System credits must use a reserved key prefix {RESERVED_KEY_PREFIXES}"
            )
        return self._apply(user_id, TransactionType.ADD, amount, idempotency_key, description)

    def read_credit_index(self, transaction: Transaction, user_id: str, idempotency_key: str) -> DocumentSnapshot:
        """Read the key index a later ``stage_credit`` will write. Must happen in the read phase."""
        return transaction.get(IDEMPOTENCY_KEYS, idempotency_doc_id(user_id, idempotency_key))

    def stage_credit(
        self,
        transaction: Transaction,
        wallet: DocumentSnapshot,
        index: DocumentSnapshot,
        amount: Decimal,
        idempotency_key: str,
        description: str,
        now: datetime,
    ) -> TransactionResult:
        """
        Stage a wallet credit inside a caller-owned transaction.

        ``wallet`` and ``index`` (from ``read_credit_index``) must have been
        read through ``transaction``. A key that is already recorded is
        refused rather than credited twice.
        """
        if not is_reserved_key(idempotency_key):
            raise ReservedIdempotencyKeyError(
                f"System credits must use a reserved key prefix {RESERVED_KEY_PREFIXES}"
            )
        if index.exists:
            raise IdempotencyKeyInUseError(
                f"Key {idempotency_key} already recorded for user {wallet.get('userId')}"
            )
        return self._stage(transaction, wallet, TransactionType.ADD, amount, idempotency_key, description, now)

    @staticmethod
    def _check_client_key(idempotency_key: str) -> None:
        if idempotency_key and is_reserved_key(idempotency_key.strip()):
            raise ReservedIdempotencyKeyError(
                f"idempotencyKey may not start with {' or '.join(RESERVED_KEY_PREFIXES)}"
            )

    def _apply(
        self,
        user_id: str,
        entry_type: TransactionType,
        amount: Any,
        idempotency_key: str,
        description: Optional[str],
    ) -> Union[TransactionResult, InsufficientBalance]:
        value = _to_amount(amount)
        if not idempotency_key or not idempotency_key.strip():
            raise MissingIdempotencyKeyError("idempotencyKey is required")

        wallet_ref = self.find_active_wallet(user_id)
        index_id = idempotency_doc_id(user_id, idempotency_key)

        def body(transaction: Transaction) -> Union[TransactionResult, InsufficientBalance]:
            index = transaction.get(IDEMPOTENCY_KEYS, index_id)
            if index.exists:
                record = transaction.get(TRANSACTIONS, index.get("transactionId"))
                return self._result_from_document(record.data, replayed=True)

            wallet = transaction.get(WALLETS, wallet_ref.id)
            if not wallet.exists or not wallet.get("isActive"):
                raise WalletNotFoundError(f"Wallet not found for user {user_id}")

            balance = Decimal(wallet.get("balance"))
            if entry_type == TransactionType.DEDUCT and balance < value:
                return InsufficientBalance(balance=balance, requested=value)

            return self._stage(
                transaction,
                wallet,
                entry_type,
                value,
                idempotency_key,
                description or DEFAULT_DESCRIPTIONS[entry_type],
                self.clock(),
            )

        outcome = self.store.run_transaction(body)

        if isinstance(outcome, InsufficientBalance):
            logger.info(
                "Deduct of %s rejected for user %s: balance %s", value, user_id, outcome.balance
            )
        elif outcome.replayed:
            logger.info("Idempotent replay of %s for user %s", idempotency_key, user_id)
        else:
            logger.info(
                "%s %s for user %s (transaction %s)", entry_type.value, value, user_id, outcome.transaction_id
            )
        return outcome

    def _stage(
        self,
        transaction: Transaction,
        wallet: DocumentSnapshot,
        entry_type: TransactionType,
        amount: Decimal,
        idempotency_key: str,
        description: str,
        now: datetime,
    ) -> TransactionResult:
        previous_balance = Decimal(wallet.get("balance"))
        if entry_type == TransactionType.ADD:
            new_balance = previous_balance + amount
        else:
            new_balance = previous_balance - amount

        transaction.update(WALLETS, wallet.id, {
            "balance": new_balance,
            "version": wallet.get("version", 0) + 1,
            "updatedAt": now,
        })

        record = TransactionRecord(
            transaction_id=str(uuid4()),
            user_id=wallet.get("userId"),
            wallet_id=wallet.id,
            type=entry_type,
            amount=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            description=description,
            status=TransactionStatus.COMPLETED,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        transaction.create(TRANSACTIONS, record.transaction_id, record.model_dump(by_alias=True))
        transaction.create(
            IDEMPOTENCY_KEYS,
            idempotency_doc_id(record.user_id, idempotency_key),
            {"transactionId": record.transaction_id, "createdAt": now},
        )
        return self._result_from_document(record.model_dump(by_alias=True))

    # ---------- History ----------

    def list_transactions(
        self,
        user_id: str,
        entry_type: Optional[TransactionType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        filters = {"userId": user_id}
        if entry_type is not None:
            filters["type"] = TransactionType(entry_type)
        snapshots = self.store.query(
            TRANSACTIONS, filters, order_by="createdAt", descending=True, limit=limit, offset=offset
        )
        return [TransactionRecord.model_validate(s.data) for s in snapshots]

    def get_transaction(self, user_id: str, transaction_id: str) -> TransactionRecord:
        snapshot = self.store.get(TRANSACTIONS, transaction_id)
        if not snapshot.exists or snapshot.get("userId") != user_id:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return TransactionRecord.model_validate(snapshot.data)

    @staticmethod
    def _result_from_document(data: dict, replayed: bool = False) -> TransactionResult:
        return TransactionResult(
            transaction_id=data["transactionId"],
            amount=data["amount"],
            previous_balance=data["previousBalance"],
            new_balance=data["newBalance"],
            status=data["status"],
            replayed=replayed,
        )
