"""
Shared FastAPI dependencies.

Service factories are wrapped here so tests can swap them through
app.dependency_overrides without touching the lru_cache'd singletons.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gestro.core.config import get_settings
from gestro.database import async_session_maker, get_db
from gestro.models import Profile
from gestro.services.assistant import BaseAssistantBackend, get_assistant_backend
from gestro.services.context import ServiceContext
from gestro.services.notifications import StaffNotificationCenter, get_staff_notification_center
from gestro.services.payment import BasePaymentService, get_payment_service
from gestro.services.profiles import ProfileRepository
from gestro.services.realtime import BaseChangeFeed, get_change_feed


def get_session_factory() -> async_sessionmaker:
    """Session factory for work that outlives the request (background tasks)."""
    return async_session_maker


def get_feed() -> BaseChangeFeed:
    return get_change_feed()


def get_gateway() -> BasePaymentService:
    return get_payment_service()


def get_notification_center() -> StaffNotificationCenter:
    return get_staff_notification_center()


def get_assistant() -> BaseAssistantBackend:
    return get_assistant_backend()


async def get_context(
    db: AsyncSession = Depends(get_db),
    feed: BaseChangeFeed = Depends(get_feed),
) -> ServiceContext:
    return ServiceContext(session=db, feed=feed, settings=get_settings())


async def get_current_user(
    ctx: ServiceContext = Depends(get_context),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
) -> Optional[Profile]:
    """
    Resolve the authenticated user from the auth provider's headers.

    The profile is created on first sight; anonymous requests get None.
    """
    if not x_user_id:
        return None
    return await ProfileRepository(ctx).get_or_create_profile(x_user_id, x_user_email, x_user_name)


async def require_user(user: Optional[Profile] = Depends(get_current_user)) -> Profile:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


async def require_staff(user: Profile = Depends(require_user)) -> Profile:
    if not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return user
