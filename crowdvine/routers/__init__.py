"""API routers for CrowdVine."""

from crowdvine.routers import (
    access_requests,
    admin,
    auth,
    bulk_upload,
    cart,
    checkout,
    membership,
    pallets,
    producer_orders,
    reservations,
    shop,
    stripe_webhook,
    tastings,
)

__all__ = [
    "access_requests",
    "admin",
    "auth",
    "bulk_upload",
    "cart",
    "checkout",
    "membership",
    "pallets",
    "producer_orders",
    "reservations",
    "shop",
    "stripe_webhook",
    "tastings",
]
