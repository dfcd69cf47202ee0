from fastapi import APIRouter, Depends, Request, status

from common.auth import AuthContext, get_staff_context

from .models import CreateFlyerRequest, CreateFlyerResponse
from .service import FlyerService

router = APIRouter(tags=["Flyers"])


def get_flyer_service(request: Request) -> FlyerService:
    return request.app.state.flyer_service


@router.post("/flyer", response_model=CreateFlyerResponse, status_code=status.HTTP_201_CREATED)
def create_flyer(
    request: CreateFlyerRequest,
    auth: AuthContext = Depends(get_staff_context),
    service: FlyerService = Depends(get_flyer_service),
) -> CreateFlyerResponse:
    flyer = service.create_flyer(request, company_id=auth.company_id)
    return CreateFlyerResponse(
        flyer_id=flyer.flyer_id,
        type=flyer.type,
        message=f"{flyer.type.value} flyer created successfully",
        data=flyer,
    )
