"""Server-side PostHog events for the member journey.

Registration, invitations, reservations, payments and Impact Point awards are
captured here. Nothing is sent unless analytics is enabled and keyed.
"""

import logging
from typing import Any

from posthog import Posthog

from crowdvine.config import settings

logger = logging.getLogger(__name__)


class PostHogService:
    """Lazily created PostHog client; every call is a no-op when disabled."""

    def __init__(self) -> None:
        self._client: Posthog | None = None
        self._initialized = False

    def is_available(self) -> bool:
        """True if PostHog is enabled and an API key is set."""
        return settings.posthog_enabled and bool(settings.posthog_api_key)

    def _ensure_initialized(self) -> bool:
        if self._initialized:
            return self._client is not None

        self._initialized = True
        if not self.is_available():
            logger.debug("PostHog analytics disabled or not configured")
            return False

        self._client = Posthog(
            settings.posthog_api_key,
            host=settings.posthog_host,
            debug=settings.posthog_debug,
        )
        logger.info("PostHog analytics initialized (host=%s)", settings.posthog_host)
        return True

    def capture(
        self,
        distinct_id: str,
        event: str,
        properties: dict[str, Any] | None = None,
    ) -> None:
        """Capture an analytics event such as "reservation_placed"."""
        if not self._ensure_initialized():
            return

        try:
            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties or {},
            )
        except Exception as e:
            # Analytics must never break a request
            logger.error("Failed to capture PostHog event %s: %s", event, e)

    def identify(self, distinct_id: str, properties: dict[str, Any] | None = None) -> None:
        if not self._ensure_initialized():
            return

        try:
            self._client.identify(distinct_id=distinct_id, properties=properties or {})
        except Exception as e:
            logger.error("Failed to identify PostHog user: %s", e)

    def shutdown(self) -> None:
        """Flush pending events. Called from the application lifespan."""
        if self._client is None:
            return

        try:
            self._client.flush()
            self._client.shutdown()
            logger.info("PostHog client shutdown complete")
        except Exception as e:
            logger.error("Error during PostHog shutdown: %s", e)


# Global service instance
posthog_service = PostHogService()
