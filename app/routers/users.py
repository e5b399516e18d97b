"""User endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey, ApiScope
from app.models.user import User
from app.schemas.user import UserCreate, UserRead
from app.security import require_current_user, require_scope
from app.utils.audit import actor_from_api_key, log_audit
from app.utils.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/users", tags=["users"])


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> User:
    """Create a new user."""

    user = User(**payload.model_dump())
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Could not create user.", code="USER_CREATE_FAILED") from exc

    log_audit(
        db,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
        action="CREATE_USER",
        entity="User",
        entity_id=user.id,
        data={"name": user.name, "email": user.email, "role": user.role.value},
    )

    db.commit()
    db.refresh(user)
    return user


@router.get("/me", response_model=UserRead)
def read_current_user(user: User = Depends(require_current_user)) -> User:
    """Return the caller's account, including subscription expiry."""

    return user


@router.get(
    "/{user_id}",
    response_model=UserRead,
)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> User:
    """Retrieve a user by identifier."""

    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found.", code="USER_NOT_FOUND")
    return user
