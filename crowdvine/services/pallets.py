"""Pallet fill levels, completion rules and the completion flow."""

import logging
from datetime import timedelta
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In

from crowdvine.config import settings
from crowdvine.models.base import utcnow
from crowdvine.models.pallet import (
    CompletionCondition,
    CompletionGroup,
    CompletionRules,
    Pallet,
    PalletStatus,
)
from crowdvine.models.reservation import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
)
from crowdvine.models.wine import Wine
from crowdvine.services.pricing import cost_in_sek, format_price_cents

logger = logging.getLogger(__name__)

METRIC_LABELS = {"bottles": "Bottles", "profit_sek": "Profit (SEK)"}

# Reservations moved to pending_payment when a pallet completes
_PAYABLE_STATUSES = (ReservationStatus.PLACED, ReservationStatus.PENDING_PAYMENT)


class PalletError(Exception):
    """Raised for pallet operations that cannot be carried out."""


def _compare(left: float, op: str, right: float) -> bool:
    if op == ">=":
        return left >= right
    if op == ">":
        return left > right
    if op == "<=":
        return left <= right
    if op == "<":
        return left < right
    return False


def _evaluate_group(group: CompletionGroup, metrics: dict[str, float]) -> bool:
    results = [
        _compare(metrics.get(cond.metric, 0), cond.op, float(cond.value or 0))
        for cond in group.conditions
    ]
    if not results:
        return False
    return all(results) if group.operator == "AND" else any(results)


def evaluate_completion_rules(
    rules: CompletionRules | None, metrics: dict[str, float]
) -> bool | None:
    """Evaluate completion rules against pallet metrics.

    Returns None when there are no rules, so callers fall back to capacity.
    """
    if rules is None or not rules.groups:
        return None

    results = [_evaluate_group(group, metrics) for group in rules.groups]
    if rules.mode == "SEQUENTIAL":
        # IF / ELSE IF: the first matching group completes the pallet
        return any(results)
    return all(results) if rules.operator == "AND" else any(results)


def _format_condition(cond: CompletionCondition) -> str:
    value = float(cond.value)
    shown = int(value) if value.is_integer() else value
    return f"{METRIC_LABELS.get(cond.metric, cond.metric)} {cond.op} {shown}"


def _format_group(group: CompletionGroup) -> str:
    parts = [_format_condition(c) for c in group.conditions]
    return f"({f' {group.operator} '.join(parts)})" if parts else "(—)"


def format_completion_rules(rules: CompletionRules | None) -> str:
    """Human readable form, e.g. IF (Bottles >= 600) THEN Complete ELSE Incomplete."""
    if rules is None or not rules.groups:
        return "IF — ELSE —"

    groups = [_format_group(g) for g in rules.groups]
    if rules.mode == "SEQUENTIAL":
        else_ifs = "".join(f" ELSE IF {g} THEN Complete" for g in groups[1:])
        return f"IF {groups[0]} THEN Complete{else_ifs} ELSE Incomplete"
    return f"IF {f' {rules.operator} '.join(groups)} THEN Complete ELSE Incomplete"


async def active_reservations(pallet_id: PydanticObjectId) -> list[Reservation]:
    return await Reservation.find(
        Reservation.pallet_id == pallet_id,
        In(Reservation.status, list(ACTIVE_RESERVATION_STATUSES)),
    ).to_list()


async def pallet_bottle_count(pallet_id: PydanticObjectId) -> int:
    """Bottles held on a pallet by active reservations."""
    return sum(r.bottle_count for r in await active_reservations(pallet_id))


async def pallet_bottle_counts(pallet_ids: list[PydanticObjectId]) -> dict[PydanticObjectId, int]:
    """Bottle counts for several pallets in one query."""
    counts: dict[PydanticObjectId, int] = {pid: 0 for pid in pallet_ids}
    if not pallet_ids:
        return counts
    reservations = await Reservation.find(
        In(Reservation.pallet_id, pallet_ids),
        In(Reservation.status, list(ACTIVE_RESERVATION_STATUSES)),
    ).to_list()
    for reservation in reservations:
        counts[reservation.pallet_id] = counts.get(reservation.pallet_id, 0) + reservation.bottle_count
    return counts


async def pallet_profit_sek(pallet: Pallet, reservations: list[Reservation] | None = None) -> float:
    """Gross profit on a pallet.

    Each bottle earns its price ex VAT minus its cost in SEK (alcohol tax
    included); the pallet freight cost is then subtracted once.
    """
    if reservations is None:
        reservations = await active_reservations(pallet.id)

    wine_ids = {item.wine_id for r in reservations for item in r.items}
    wines = {w.id: w for w in await Wine.find(In(Wine.id, list(wine_ids))).to_list()}

    vat = settings.vat_rate
    profit = 0.0
    for reservation in reservations:
        for item in reservation.items:
            wine = wines.get(item.wine_id)
            if wine is None:
                continue
            unit_ex_vat = item.unit_price_cents / 100
            if wine.price_includes_vat:
                unit_ex_vat /= 1 + vat
            unit_cost = cost_in_sek(wine.cost_amount, wine.exchange_rate, wine.alcohol_tax_cents)
            profit += item.quantity * (unit_ex_vat - unit_cost)
    return round(profit - pallet.cost_cents / 100, 2)


async def pallet_metrics(pallet: Pallet) -> dict[str, float]:
    reservations = await active_reservations(pallet.id)
    return {
        "bottles": sum(r.bottle_count for r in reservations),
        "profit_sek": await pallet_profit_sek(pallet, reservations),
    }


async def check_pallet_completion(pallet_id: PydanticObjectId) -> bool:
    """Complete the pallet if it is full. Returns True when it was completed.

    Completion failures propagate so the caller sees them.
    """
    pallet = await Pallet.get(pallet_id)
    if pallet is None:
        logger.error("Pallet %s not found", pallet_id)
        return False
    if pallet.is_complete:
        return False

    metrics = await pallet_metrics(pallet)
    verdict = evaluate_completion_rules(pallet.completion_rules, metrics)
    if verdict is None:
        verdict = metrics["bottles"] >= pallet.bottle_capacity

    logger.info(
        "Pallet %s: %d/%d bottles, profit %.2f SEK",
        pallet.id,
        metrics["bottles"],
        pallet.bottle_capacity,
        metrics["profit_sek"],
    )
    if not verdict:
        return False

    await complete_pallet(pallet)
    return True


async def complete_pallet(pallet: Pallet) -> Pallet:
    """Move reservations to payment, send payment links, then mark complete.

    The pallet is only marked complete after every payment request went out.
    """
    from crowdvine.services.payments import send_payment_requests

    deadline = utcnow() + timedelta(days=settings.payment_deadline_days)

    reservations = await Reservation.find(
        Reservation.pallet_id == pallet.id,
        In(Reservation.status, list(_PAYABLE_STATUSES)),
    ).to_list()
    for reservation in reservations:
        reservation.status = ReservationStatus.PENDING_PAYMENT
        reservation.payment_deadline = deadline
        reservation.updated_at = utcnow()
        await reservation.save()
    logger.info("Pallet %s: %d reservations awaiting payment", pallet.id, len(reservations))

    await send_payment_requests(pallet, reservations)

    pallet.status = PalletStatus.COMPLETE
    pallet.is_complete = True
    pallet.completed_at = utcnow()
    pallet.payment_deadline = deadline
    pallet.updated_at = utcnow()
    await pallet.save()
    logger.info("Pallet %s marked complete, payment deadline %s", pallet.id, deadline.isoformat())
    return pallet


async def pallet_status(pallet_id: PydanticObjectId) -> dict[str, Any]:
    pallet = await Pallet.get(pallet_id)
    if pallet is None:
        raise PalletError(f"Pallet {pallet_id} not found")

    pending = confirmed = total = 0
    for reservation in await active_reservations(pallet.id):
        bottles = reservation.bottle_count
        if reservation.status == ReservationStatus.PENDING_PAYMENT:
            pending += bottles
        elif reservation.status == ReservationStatus.CONFIRMED:
            confirmed += bottles
        total += bottles

    percentage = total / pallet.bottle_capacity * 100 if pallet.bottle_capacity > 0 else 0
    return {
        "pallet_id": str(pallet.id),
        "status": pallet.status.value,
        "is_complete": pallet.is_complete,
        "stats": {
            "pending": pending,
            "confirmed": confirmed,
            "total": total,
            "percentage": round(percentage, 1),
        },
        "needs_payment": pending > 0 and pallet.is_complete,
    }


def fill_data(pallet: Pallet, bottles: int) -> dict[str, Any]:
    """Capacity figures shown next to a pallet."""
    capacity = pallet.bottle_capacity
    return {
        "current_bottles": bottles,
        "max_bottles": capacity,
        "remaining_bottles": max(capacity - bottles, 0),
        "percentage": round(bottles / capacity * 100, 1) if capacity > 0 else 0,
    }


def pallet_to_dict(pallet: Pallet, bottles: int | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": str(pallet.id),
        "name": pallet.name,
        "description": pallet.description,
        "pickup_zone_id": str(pallet.pickup_zone_id) if pallet.pickup_zone_id else None,
        "delivery_zone_id": str(pallet.delivery_zone_id) if pallet.delivery_zone_id else None,
        "cost_cents": pallet.cost_cents,
        "cost": format_price_cents(pallet.cost_cents),
        "bottle_capacity": pallet.bottle_capacity,
        "status": pallet.status.value,
        "status_mode": pallet.status_mode,
        "is_complete": pallet.is_complete,
        "completed_at": pallet.completed_at,
        "payment_deadline": pallet.payment_deadline,
        "completion_rules": pallet.completion_rules.model_dump() if pallet.completion_rules else None,
        "completion_rules_text": format_completion_rules(pallet.completion_rules),
        "created_at": pallet.created_at,
    }
    if bottles is not None:
        data.update(fill_data(pallet, bottles))
    return data


async def open_pallets_with_fill() -> list[dict[str, Any]]:
    """Open pallets, most recent first, with their fill levels."""
    pallets = await Pallet.find(Pallet.status == PalletStatus.OPEN).sort(-Pallet.created_at).to_list()
    counts = await pallet_bottle_counts([p.id for p in pallets])
    return [pallet_to_dict(p, counts.get(p.id, 0)) for p in pallets]


async def move_reservation(reservation: Reservation, target: Pallet) -> Reservation:
    """Move a reservation to another pallet, checking the target has room."""
    if reservation.pallet_id == target.id:
        return reservation
    if target.status != PalletStatus.OPEN:
        raise PalletError(f"Pallet {target.name} is not open")
    bottles = await pallet_bottle_count(target.id)
    if bottles + reservation.bottle_count > target.bottle_capacity:
        raise PalletError(
            f"Pallet {target.name} has room for {target.bottle_capacity - bottles} bottles"
        )

    previous = reservation.pallet_id
    reservation.pallet_id = target.id
    reservation.pickup_zone_id = target.pickup_zone_id
    reservation.delivery_zone_id = target.delivery_zone_id
    reservation.updated_at = utcnow()
    await reservation.save()
    logger.info("Reservation %s moved from pallet %s to %s", reservation.id, previous, target.id)
    return reservation


async def reset_reservations(pallet: Pallet) -> int:
    """Detach every reservation from a pallet. Returns how many were detached."""
    reservations = await Reservation.find(Reservation.pallet_id == pallet.id).to_list()
    for reservation in reservations:
        reservation.pallet_id = None
        reservation.updated_at = utcnow()
        await reservation.save()
    logger.info("Detached %d reservations from pallet %s", len(reservations), pallet.id)
    return len(reservations)


async def set_pallet_status(pallet: Pallet, new_status: PalletStatus) -> Pallet:
    """Set the status by hand. The pallet stops following payments automatically."""
    pallet.status = new_status
    pallet.status_mode = "manual"
    if new_status == PalletStatus.OPEN:
        pallet.is_complete = False
        pallet.completed_at = None
    elif new_status in (PalletStatus.COMPLETE, PalletStatus.AWAITING_PICKUP, PalletStatus.DELIVERED):
        pallet.is_complete = True
        pallet.completed_at = pallet.completed_at or utcnow()
    pallet.updated_at = utcnow()
    await pallet.save()
    logger.info("Pallet %s status set to %s (manual)", pallet.id, new_status.value)
    return pallet


async def check_open_pallets() -> list[PydanticObjectId]:
    """Run the completion check on every open pallet. Returns completed ids."""
    completed = []
    for pallet in await Pallet.find(Pallet.is_complete == False).to_list():  # noqa: E712
        if await check_pallet_completion(pallet.id):
            completed.append(pallet.id)
    return completed
