"""Membership ladder: Impact Points, levels, invite quotas and buffs."""

from .levels import (
    INVITE_QUOTAS,
    LEVEL_THRESHOLDS,
    POINTS_PER_WINE_VOUCHER,
    VOUCHER_DISCOUNT_PERCENT,
    get_level_info,
    get_next_level_info,
    get_voucher_discount_percent,
    get_voucher_progress,
    level_for_points,
)
from .overview import event_to_dict, membership_overview, membership_to_dict
from .points import (
    adjust_impact_points,
    award_for_invite_signup,
    award_for_reservation,
    award_for_review,
    award_for_share,
    award_impact_points,
    get_membership,
    get_or_create_membership,
    recent_events,
    set_level,
)
from .progression import (
    active_buffs,
    apply_buffs,
    clear_buffs_on_level_up,
    level_segment,
    progression_summary,
    total_buff_percentage,
)
from .quota import (
    QuotaExceededError,
    available_invites,
    check_and_reset_quota_if_needed,
    consume_invite_quota,
    get_quota_status,
    reset_monthly_quotas,
    time_until_reset,
)

__all__ = [
    # Levels
    "INVITE_QUOTAS",
    "LEVEL_THRESHOLDS",
    "POINTS_PER_WINE_VOUCHER",
    "VOUCHER_DISCOUNT_PERCENT",
    "get_level_info",
    "get_next_level_info",
    "get_voucher_discount_percent",
    "get_voucher_progress",
    "level_for_points",
    # Overview
    "event_to_dict",
    "membership_overview",
    "membership_to_dict",
    # Points
    "adjust_impact_points",
    "award_for_invite_signup",
    "award_for_reservation",
    "award_for_review",
    "award_for_share",
    "award_impact_points",
    "get_membership",
    "get_or_create_membership",
    "recent_events",
    "set_level",
    # Progression
    "active_buffs",
    "apply_buffs",
    "clear_buffs_on_level_up",
    "level_segment",
    "progression_summary",
    "total_buff_percentage",
    # Quota
    "QuotaExceededError",
    "available_invites",
    "check_and_reset_quota_if_needed",
    "consume_invite_quota",
    "get_quota_status",
    "reset_monthly_quotas",
    "time_until_reset",
]
