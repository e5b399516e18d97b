"""Administrative account overrides."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey, ApiScope
from app.schemas.user import SubscriptionExtend, SubscriptionRead, UserRead
from app.security import require_scope
from app.services.subscriptions import extend_user_subscription
from app.utils.audit import actor_from_api_key

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/users/{user_id}/subscription", response_model=SubscriptionRead)
def extend_subscription(
    user_id: int,
    payload: SubscriptionExtend,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> SubscriptionRead:
    """Extend (or restart) a user's subscription by ``days``."""

    user = extend_user_subscription(
        db,
        user_id,
        payload.days,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
    )
    return SubscriptionRead(user=UserRead.model_validate(user))
