"""
Profile repository.

Profiles are keyed by the id the hosted auth provider assigns; the
first request from a new user creates the row.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from gestro.models import Profile, UserRole
from gestro.schemas import ProfileUpdate
from gestro.services.context import ServiceContext

logger = logging.getLogger(__name__)


class ProfileRepository:

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.db = ctx.session

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            result = await self.db.execute(select(Profile).where(Profile.id == user_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load profile {user_id}")
            return None

    async def get_profile_by_email(self, email: str) -> Optional[Profile]:
        try:
            result = await self.db.execute(select(Profile).where(Profile.email == email))
            return result.scalars().first()
        except SQLAlchemyError:
            logger.exception(f"Failed to load profile for {email}")
            return None

    async def get_or_create_profile(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Optional[Profile]:
        profile = await self.get_profile(user_id)
        if profile is not None:
            return profile

        profile = Profile(id=user_id, email=email, name=name, role=UserRole.CUSTOMER)
        try:
            self.db.add(profile)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create profile {user_id}")
            return None

        logger.info(f"Profile created for {user_id}")
        return profile

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> Optional[Profile]:
        profile = await self.get_profile(user_id)
        if profile is None:
            return None
        try:
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(profile, field, value)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to update profile {user_id}")
            return None
        return profile

    async def list_by_role(self, role: UserRole) -> list[Profile]:
        try:
            result = await self.db.execute(
                select(Profile).where(Profile.role == role).order_by(Profile.created_at.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Failed to list {role.value} profiles")
            return []

    async def create_admin(
        self,
        email: str,
        name: str,
        user_id: Optional[str] = None,
    ) -> Optional[Profile]:
        """
        Promote the profile with this e-mail (or id) to admin, creating it if needed.
        """
        profile = None
        if user_id:
            profile = await self.get_profile(user_id)
        if profile is None:
            profile = await self.get_profile_by_email(email)

        try:
            if profile is None:
                profile = Profile(id=user_id or str(uuid.uuid4()), email=email, name=name)
                self.db.add(profile)
            profile.role = UserRole.ADMIN
            profile.name = profile.name or name
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create admin {email}")
            return None

        logger.info(f"Admin account ready: {email} ({profile.id})")
        return profile
