from dataclasses import asdict

from fastapi import APIRouter, Depends

from querynox.dependencies import get_current_user, get_usage_service
from querynox.models.database_models import User
from querynox.models.schemas import ProductResponse, UserInfo, UserInfoResponse
from querynox.services.usage_service import UsageService
from querynox.services.user_service import ProductService

router = APIRouter(prefix="/user", tags=["user"])


@router.get("", response_model=UserInfoResponse)
async def get_user_info(
    user: User = Depends(get_current_user),
    usage: UsageService = Depends(get_usage_service),
):
    """Usage counters for the current period plus the subscribed product, if any."""
    user = await usage.refresh_period(user)
    product = None
    if user.product_id:
        found = await ProductService().get_product(user.product_id)
        if found is not None:
            product = ProductResponse(**asdict(found))
    return UserInfoResponse(
        user=UserInfo(
            id=user.id,
            is_pro=user.has_subscription,
            used_chat_generation=user.used_chat_generation,
            used_image_generation=user.used_image_generation,
            used_web_search=user.used_web_search,
            used_file_rag=user.used_file_rag,
            limits_updated_at=user.limits_updated_at,
            created_at=user.created_at,
            product=product,
        )
    )
