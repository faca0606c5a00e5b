"""Admin statistics, users and the bookings view."""

import logging
from typing import Any

from beanie.operators import In
from fastapi import HTTPException, Query, status
from pydantic import BaseModel

from crowdvine.models import (
    ACTIVE_RESERVATION_STATUSES,
    Membership,
    Pallet,
    Producer,
    Reservation,
    ReservationStatus,
    User,
    UserRole,
    Wine,
)
from crowdvine.models.base import utcnow
from crowdvine.services.auth import RequireAdmin

from .._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)


class RoleUpdate(BaseModel):
    role: UserRole
    producer_id: str | None = None


async def _count_by(model, field: str) -> dict[str, int]:
    pipeline = [{"$group": {"_id": f"${field}", "count": {"$sum": 1}}}]
    rows = await model.get_pymongo_collection().aggregate(pipeline).to_list(length=None)
    return {str(row["_id"]): row["count"] for row in rows}


async def get_admin_stats(admin: RequireAdmin) -> dict[str, Any]:
    """Counts across users, memberships, catalog, pallets and reservations."""
    reserved_pipeline = [
        {"$match": {"status": {"$in": [s.value for s in ACTIVE_RESERVATION_STATUSES]}}},
        {"$unwind": "$items"},
        {"$group": {"_id": None, "total": {"$sum": "$items.quantity"}}},
    ]
    reserved = await Reservation.get_pymongo_collection().aggregate(reserved_pipeline).to_list(
        length=None
    )

    return {
        "users": {
            "total": await User.count(),
            "active": await User.find(User.is_active == True).count(),  # noqa: E712
            "admins": await User.find(User.is_superuser == True).count(),  # noqa: E712
            "producers": await User.find(User.role == UserRole.PRODUCER).count(),
        },
        "memberships_by_level": await _count_by(Membership, "level"),
        "wines": {
            "total": await Wine.count(),
            "live": await Wine.find(Wine.is_live == True).count(),  # noqa: E712
        },
        "producers": await Producer.count(),
        "pallets_by_status": await _count_by(Pallet, "status"),
        "reservations_by_status": await _count_by(Reservation, "status"),
        "bottles_reserved": reserved[0]["total"] if reserved else 0,
        "generated_at": utcnow().isoformat(),
    }


async def list_users(
    admin: RequireAdmin,
    skip: int = Query(0, ge=0),
    limit: int = Query(200, ge=1, le=1000),
) -> dict[str, Any]:
    users = await User.find_all().sort(-User.created_at).skip(skip).limit(limit).to_list()
    memberships = {
        m.user_id: m
        for m in await Membership.find(In(Membership.user_id, [u.id for u in users])).to_list()
    }
    return {
        "users": [
            {
                "id": str(u.id),
                "email": u.email,
                "full_name": u.full_name,
                "role": u.role.value,
                "producer_id": str(u.producer_id) if u.producer_id else None,
                "is_active": u.is_active,
                "is_verified": u.is_verified,
                "is_superuser": u.is_superuser,
                "membership_level": memberships[u.id].level.value if u.id in memberships else None,
                "impact_points": memberships[u.id].impact_points if u.id in memberships else 0,
                "created_at": u.created_at,
                "last_login": u.last_login,
            }
            for u in users
        ],
        "total_users": await User.count(),
    }


async def set_user_role(user_id: str, body: RoleUpdate, admin: RequireAdmin) -> dict[str, Any]:
    """Set a user's role; producer accounts must be linked to a producer."""
    user = await get_or_404(User, user_id, "User")
    producer_id = optional_object_id(body.producer_id, "Producer")
    if body.role == UserRole.PRODUCER:
        if producer_id is None or await Producer.get(producer_id) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Producer accounts need an existing producer_id",
            )
    user.role = body.role
    user.producer_id = producer_id if body.role == UserRole.PRODUCER else None
    user.is_superuser = body.role == UserRole.ADMIN
    user.updated_at = utcnow()
    await user.save()
    logger.info("Admin %s set role of %s to %s", admin.id, user.id, body.role.value)
    return {"id": str(user.id), "role": user.role.value, "producer_id": body.producer_id}


async def list_bookings(
    admin: RequireAdmin,
    pallet_id: str | None = None,
    status_filter: ReservationStatus | None = None,
) -> list[dict[str, Any]]:
    """One row per reservation item, with wine, producer and pallet names."""
    query = Reservation.find()
    pallet_oid = optional_object_id(pallet_id, "Pallet")
    if pallet_oid is not None:
        query = query.find(Reservation.pallet_id == pallet_oid)
    if status_filter is not None:
        query = query.find(Reservation.status == status_filter)
    reservations = await query.sort(-Reservation.created_at).to_list()

    wine_ids = list({i.wine_id for r in reservations for i in r.items})
    wines = {w.id: w for w in await Wine.find(In(Wine.id, wine_ids)).to_list()}
    producer_ids = list({w.producer_id for w in wines.values() if w.producer_id})
    producers = {p.id: p for p in await Producer.find(In(Producer.id, producer_ids)).to_list()}
    pallet_ids = list({r.pallet_id for r in reservations if r.pallet_id})
    pallets = {p.id: p for p in await Pallet.find(In(Pallet.id, pallet_ids)).to_list()}
    user_ids = list({r.user_id for r in reservations})
    users = {u.id: u for u in await User.find(In(User.id, user_ids)).to_list()}

    rows = []
    for reservation in reservations:
        pallet = pallets.get(reservation.pallet_id)
        user = users.get(reservation.user_id)
        for item in reservation.items:
            wine = wines.get(item.wine_id)
            producer = producers.get(wine.producer_id) if wine else None
            rows.append(
                {
                    "reservation_id": str(reservation.id),
                    "item_id": item.item_id,
                    "user_email": user.email if user else None,
                    "wine_id": str(item.wine_id),
                    "wine_title": wine.title if wine else None,
                    "producer_name": producer.name if producer else None,
                    "pallet_id": str(pallet.id) if pallet else None,
                    "pallet_name": pallet.name if pallet else None,
                    "quantity": item.quantity,
                    "band": item.price_band,
                    "unit_price_cents": item.unit_price_cents,
                    "status": reservation.status.value,
                    "payment_status": reservation.payment_status.value,
                    "created_at": reservation.created_at,
                }
            )
    return rows
