"""Beanie database adapter for fastapi-users."""

from collections.abc import AsyncGenerator

from fastapi_users_db_beanie import BeanieUserDatabase

from crowdvine.models.user import User


async def get_user_db() -> AsyncGenerator[BeanieUserDatabase, None]:
    yield BeanieUserDatabase(User)
