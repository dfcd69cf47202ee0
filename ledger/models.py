from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, ConfigDict
from pydantic.alias_generators import to_camel

from common.schemas import CamelModel, Money


class TransactionType(str, Enum):
    ADD = "ADD"
    DEDUCT = "DEDUCT"


class TransactionStatus(str, Enum):
    COMPLETED = "COMPLETED"


class TokenRequest(CamelModel):
    amount: Money = Field(..., description="Positive amount of tokens")
    idempotency_key: str = Field(..., min_length=1, description="Unique key to prevent duplicates")
    description: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "amount": 100,
                "description": "Top up",
                "idempotencyKey": "topup-2024-05-01-001",
            }
        },
    )


class Wallet(CamelModel):
    wallet_id: str
    user_id: str
    balance: Money
    currency: str = "TOKEN"
    version: int = 1
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class TransactionRecord(CamelModel):
    transaction_id: str
    user_id: str
    wallet_id: str
    type: TransactionType
    amount: Money
    previous_balance: Money
    new_balance: Money
    description: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    idempotency_key: str
    created_at: datetime
    updated_at: datetime


class TransactionResult(CamelModel):
    transaction_id: str
    amount: Money
    previous_balance: Money
    new_balance: Money
    status: TransactionStatus
    replayed: bool = Field(default=False, exclude=True)


class InsufficientBalance(CamelModel):
    balance: Money
    requested: Money


class TokenResponse(CamelModel):
    success: bool = True
    message: str
    data: TransactionResult

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "success": True,
                "message": "Tokens added successfully",
                "data": {
                    "transactionId": "4f1c2a9e-8d0b-4c55-9a43-2f7d2b0d6c11",
                    "amount": 100.0,
                    "previousBalance": 7.67,
                    "newBalance": 107.67,
                    "status": "COMPLETED",
                },
            }
        },
    )


class WalletResponse(CamelModel):
    success: bool = True
    data: Wallet


class Pagination(CamelModel):
    limit: int
    offset: int
    count: int


class TransactionListResponse(CamelModel):
    success: bool = True
    data: list[TransactionRecord]
    pagination: Pagination


class TransactionDetailResponse(CamelModel):
    success: bool = True
    data: TransactionRecord
