"""Membership ladder: level thresholds, quotas, voucher rules."""

import math
from typing import Any

from crowdvine.models.membership import MembershipLevel

# Ordered ladder of levels reachable through Impact Points
LADDER: list[MembershipLevel] = [
    MembershipLevel.BASIC,
    MembershipLevel.BRONS,
    MembershipLevel.SILVER,
    MembershipLevel.GULD,
    MembershipLevel.PRIVILEGE,
]

LEVEL_THRESHOLDS: dict[MembershipLevel, tuple[int, float]] = {
    MembershipLevel.BASIC: (0, 4),
    MembershipLevel.BRONS: (5, 14),
    MembershipLevel.SILVER: (15, 34),
    MembershipLevel.GULD: (35, 69),
    MembershipLevel.PRIVILEGE: (70, math.inf),
}

INVITE_QUOTAS: dict[MembershipLevel, int] = {
    MembershipLevel.REQUESTER: 0,
    MembershipLevel.BASIC: 2,
    MembershipLevel.BRONS: 5,
    MembershipLevel.SILVER: 12,
    MembershipLevel.GULD: 50,
    MembershipLevel.PRIVILEGE: 100,
    MembershipLevel.ADMIN: 999999,
}

VOUCHER_DISCOUNT_PERCENT: dict[MembershipLevel, int] = {
    MembershipLevel.REQUESTER: 0,
    MembershipLevel.BASIC: 5,
    MembershipLevel.BRONS: 8,
    MembershipLevel.SILVER: 10,
    MembershipLevel.GULD: 12,
    MembershipLevel.PRIVILEGE: 15,
    MembershipLevel.ADMIN: 15,
}

LEVEL_DISPLAY_NAMES: dict[MembershipLevel, str] = {
    MembershipLevel.REQUESTER: "Requester",
    MembershipLevel.BASIC: "Basic",
    MembershipLevel.BRONS: "Plus",
    MembershipLevel.SILVER: "Premium",
    MembershipLevel.GULD: "Priority",
    MembershipLevel.PRIVILEGE: "Privilege",
    MembershipLevel.ADMIN: "Admin",
}

POINTS_PER_WINE_VOUCHER = 10

# Impact Points per event
IP_INVITE_SIGNUP = 1
IP_INVITE_RESERVATION = 2
IP_INVITE_SECOND_ORDER = 1
IP_OWN_ORDER = 1
IP_OWN_ORDER_LARGE = 2
IP_REVIEW_SUBMITTED = 1
IP_SHARE_ACTION = 1
MINIMUM_BOTTLES_FOR_IP = 6
LARGE_ORDER_THRESHOLD = 12
RATE_LIMIT_HOURS = 24

# unique pallets -> points
PALLET_MILESTONES: dict[int, int] = {3: 3, 6: 5, 12: 10}


def level_for_points(points: int) -> MembershipLevel:
    """Highest ladder level whose minimum is reached."""
    level = MembershipLevel.BASIC
    for candidate in LADDER:
        if points >= LEVEL_THRESHOLDS[candidate][0]:
            level = candidate
    return level


def level_rank(level: MembershipLevel) -> int:
    if level in LADDER:
        return LADDER.index(level)
    return -1


def display_name(level: MembershipLevel) -> str:
    return LEVEL_DISPLAY_NAMES.get(level, level.value.capitalize())


def get_level_info(level: MembershipLevel) -> dict[str, Any]:
    min_points, max_points = LEVEL_THRESHOLDS.get(level, (0, math.inf))
    return {
        "level": level.value,
        "name": display_name(level),
        "min_points": min_points,
        "max_points": None if max_points == math.inf else int(max_points),
        "invite_quota": INVITE_QUOTAS[level],
        "voucher_discount_percent": VOUCHER_DISCOUNT_PERCENT[level],
    }


def get_next_level_info(points: int, level: MembershipLevel) -> dict[str, Any] | None:
    """Next ladder step, or None at the top and for admins/requesters."""
    if level not in LADDER or level == LADDER[-1]:
        return None

    next_level = LADDER[LADDER.index(level) + 1]
    min_points = LEVEL_THRESHOLDS[next_level][0]
    return {
        "level": next_level.value,
        "name": display_name(next_level),
        "points_needed": max(0, min_points - points),
        "min_points": min_points,
    }


def get_voucher_progress(points: int) -> dict[str, Any]:
    per_voucher = POINTS_PER_WINE_VOUCHER
    progress = points % per_voucher
    return {
        "progress_in_cycle": progress,
        "points_to_next_voucher": per_voucher - progress,
        "progress_percent": progress / per_voucher * 100,
        "vouchers_earned": points // per_voucher,
        "points_per_voucher": per_voucher,
    }


def get_voucher_discount_percent(level: MembershipLevel) -> int:
    return VOUCHER_DISCOUNT_PERCENT.get(level, 0)


def own_order_points(bottle_count: int) -> tuple[int, str | None]:
    """Points and event type for a member's own order."""
    if bottle_count >= LARGE_ORDER_THRESHOLD:
        return IP_OWN_ORDER_LARGE, "own_order_large"
    if bottle_count >= MINIMUM_BOTTLES_FOR_IP:
        return IP_OWN_ORDER, "own_order"
    return 0, None
