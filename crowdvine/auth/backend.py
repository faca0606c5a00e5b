"""Bearer JWT backend shared by the fastapi-users routers and /api/auth/token."""

from fastapi_users.authentication import AuthenticationBackend, BearerTransport, JWTStrategy

from crowdvine.config import settings

# Tokens normally come from the lockout-aware token endpoint.
bearer_transport = BearerTransport(tokenUrl="/api/auth/token")


def get_jwt_strategy() -> JWTStrategy:
    from crowdvine.services.auth import TOKEN_LIFETIME_SECONDS

    return JWTStrategy(secret=settings.secret_key, lifetime_seconds=TOKEN_LIFETIME_SECONDS)


auth_backend = AuthenticationBackend(name="jwt", transport=bearer_transport, get_strategy=get_jwt_strategy)
