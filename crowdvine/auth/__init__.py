"""Account registration, login and password flows built on fastapi-users."""

from crowdvine.auth.backend import auth_backend
from crowdvine.auth.schemas import UserCreate, UserRead, UserUpdate
from crowdvine.auth.users import fastapi_users

__all__ = ["auth_backend", "fastapi_users", "UserCreate", "UserRead", "UserUpdate"]
