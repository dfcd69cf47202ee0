from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from common.auth import AuthContext, get_auth_context

from .models import (
    TokenRequest, TokenResponse, WalletResponse, TransactionListResponse,
    TransactionDetailResponse, TransactionType, InsufficientBalance, Pagination,
)
from .service import (
    LedgerService, InvalidAmountError, MissingIdempotencyKeyError,
    WalletNotFoundError, TransactionNotFoundError, ReservedIdempotencyKeyError,
)

router = APIRouter(tags=["Payment"])

IDEMPOTENT_MESSAGE = "Transaction already processed (idempotent)"


def get_ledger_service(request: Request) -> LedgerService:
    return request.app.state.ledger_service


@router.post("/add-tokens", response_model=TokenResponse)
def add_tokens(
    request: TokenRequest,
    auth: AuthContext = Depends(get_auth_context),
    service: LedgerService = Depends(get_ledger_service),
) -> TokenResponse:
    try:
        result = service.add_tokens(auth.user_id, request.amount, request.idempotency_key, request.description)
    except (InvalidAmountError, MissingIdempotencyKeyError, ReservedIdempotencyKeyError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except WalletNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User wallet not found")

    message = IDEMPOTENT_MESSAGE if result.replayed else "Tokens added successfully"
    return TokenResponse(message=message, data=result)


@router.post("/deduct-tokens", response_model=TokenResponse)
def deduct_tokens(
    request: TokenRequest,
    auth: AuthContext = Depends(get_auth_context),
    service: LedgerService = Depends(get_ledger_service),
) -> TokenResponse:
    try:
        result = service.deduct_tokens(auth.user_id, request.amount, request.idempotency_key, request.description)
    except (InvalidAmountError, MissingIdempotencyKeyError, ReservedIdempotencyKeyError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except WalletNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User wallet not found")

    if isinstance(result, InsufficientBalance):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Insufficient balance in wallet")

    message = IDEMPOTENT_MESSAGE if result.replayed else "Tokens deducted successfully"
    return TokenResponse(message=message, data=result)


@router.get("/wallet", response_model=WalletResponse)
def get_wallet(
    auth: AuthContext = Depends(get_auth_context),
    service: LedgerService = Depends(get_ledger_service),
) -> WalletResponse:
    try:
        return WalletResponse(data=service.get_wallet(auth.user_id))
    except WalletNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User wallet not found")


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    type: Optional[TransactionType] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    service: LedgerService = Depends(get_ledger_service),
) -> TransactionListResponse:
    records = service.list_transactions(auth.user_id, entry_type=type, limit=limit, offset=offset)
    return TransactionListResponse(
        data=records,
        pagination=Pagination(limit=limit, offset=offset, count=len(records)),
    )


@router.get("/transaction/{transaction_id}", response_model=TransactionDetailResponse)
def get_transaction(
    transaction_id: str,
    auth: AuthContext = Depends(get_auth_context),
    service: LedgerService = Depends(get_ledger_service),
) -> TransactionDetailResponse:
    try:
        return TransactionDetailResponse(data=service.get_transaction(auth.user_id, transaction_id))
    except TransactionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
