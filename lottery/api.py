from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from common.auth import AuthContext, get_auth_context
from flyers.errors import FlyerBudgetMissingError, FlyerNotFoundError
from ledger.service import IdempotencyKeyInUseError, WalletNotFoundError

from .models import LotteryResponse
from .service import LotteryService, PoolNotProvisionedError

router = APIRouter(tags=["Lottery"])


def get_lottery_service(request: Request) -> LotteryService:
    return request.app.state.lottery_service


@router.get("", response_model=LotteryResponse, response_model_exclude_none=True)
def claim_lottery(
    flyer_id: Optional[str] = Query(default=None, alias="flyerId"),
    auth: AuthContext = Depends(get_auth_context),
    service: LotteryService = Depends(get_lottery_service),
) -> LotteryResponse:
    """Claim this user's one-time reward from a flyer's lottery pool."""
    if not flyer_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="flyerId is required")

    try:
        outcome = service.claim(auth.user_id, flyer_id)
    except FlyerNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flyer not found")
    except WalletNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User wallet not found")
    except FlyerBudgetMissingError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except (PoolNotProvisionedError, IdempotencyKeyInUseError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return LotteryResponse.from_outcome(outcome)
