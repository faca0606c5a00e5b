"""Tests for the membership ladder, progression rewards and invite quota dates."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from crowdvine.models.membership import MembershipLevel
from crowdvine.services.membership.levels import (
    INVITE_QUOTAS,
    get_level_info,
    get_next_level_info,
    get_voucher_progress,
    level_for_points,
    own_order_points,
)
from crowdvine.services.membership.progression import (
    MAX_TOTAL_BUFF_PERCENTAGE,
    buffs_within_cap,
    level_segment,
    rewards_reached,
    sum_buffs,
)
from crowdvine.services.membership.quota import (
    available_invites,
    start_of_next_month,
    time_until_reset,
)


class TestLevels:
    @pytest.mark.parametrize(
        "points, level",
        [
            (0, MembershipLevel.BASIC),
            (4, MembershipLevel.BASIC),
            (5, MembershipLevel.BRONS),
            (14, MembershipLevel.BRONS),
            (15, MembershipLevel.SILVER),
            (35, MembershipLevel.GULD),
            (69, MembershipLevel.GULD),
            (70, MembershipLevel.PRIVILEGE),
            (500, MembershipLevel.PRIVILEGE),
        ],
    )
    def test_level_for_points(self, points, level):
        assert level_for_points(points) == level

    def test_quotas_grow_with_level(self):
        ladder = [
            MembershipLevel.BASIC,
            MembershipLevel.BRONS,
            MembershipLevel.SILVER,
            MembershipLevel.GULD,
            MembershipLevel.PRIVILEGE,
        ]
        quotas = [INVITE_QUOTAS[level] for level in ladder]
        assert quotas == [2, 5, 12, 50, 100]
        assert INVITE_QUOTAS[MembershipLevel.ADMIN] > quotas[-1]

    def test_level_info_top_level_has_no_max(self):
        info = get_level_info(MembershipLevel.PRIVILEGE)
        assert info["min_points"] == 70
        assert info["max_points"] is None
        assert info["voucher_discount_percent"] == 15

    def test_next_level(self):
        info = get_next_level_info(12, MembershipLevel.BRONS)
        assert info["level"] == "silver"
        assert info["points_needed"] == 3

    def test_no_next_level_at_top_or_for_admins(self):
        assert get_next_level_info(90, MembershipLevel.PRIVILEGE) is None
        assert get_next_level_info(0, MembershipLevel.ADMIN) is None

    def test_voucher_progress(self):
        progress = get_voucher_progress(23)
        assert progress["vouchers_earned"] == 2
        assert progress["progress_in_cycle"] == 3
        assert progress["points_to_next_voucher"] == 7

    @pytest.mark.parametrize(
        "bottles, expected",
        [
            (3, (0, None)),
            (6, (1, "own_order")),
            (11, (1, "own_order")),
            (12, (2, "own_order_large")),
            (36, (2, "own_order_large")),
        ],
    )
    def test_own_order_points(self, bottles, expected):
        assert own_order_points(bottles) == expected


class TestProgression:
    def test_segments(self):
        assert level_segment(3, MembershipLevel.BASIC) == "basic-bronze"
        assert level_segment(9, MembershipLevel.BRONS) == "bronze-silver"
        assert level_segment(20, MembershipLevel.SILVER) == "silver-gold"
        assert level_segment(40, MembershipLevel.GULD) is None

    def test_rewards_reached_in_half_open_range(self):
        reached = rewards_reached("basic-bronze", 1, 4)
        assert [r.ip_threshold for r in reached] == [2, 4]

    def test_threshold_already_passed_is_not_reached_again(self):
        assert rewards_reached("basic-bronze", 2, 3) == []

    def test_several_rewards_at_one_threshold(self):
        reached = rewards_reached("silver-gold", 29, 30)
        assert sorted(r.reward_type for r in reached) == ["badge", "buff_percentage"]

    def test_no_segment_no_rewards(self):
        assert rewards_reached(None, 0, 100) == []

    def test_buff_total_is_capped(self):
        buffs = [SimpleNamespace(buff_percentage=1.0) for _ in range(8)]
        assert sum_buffs(buffs) == MAX_TOTAL_BUFF_PERCENTAGE
        assert sum_buffs(buffs[:2]) == 2.0

    def test_buffs_within_cap_keeps_the_oldest_that_fit(self):
        buffs = [SimpleNamespace(buff_percentage=p) for p in (2.0, 2.0, 1.0, 0.5)]
        assert buffs_within_cap(buffs) == buffs[:3]
        assert buffs_within_cap([SimpleNamespace(buff_percentage=6.0)]) == []
        assert buffs_within_cap([]) == []


class TestQuotaDates:
    def test_next_month(self):
        now = datetime(2025, 3, 14, 15, 30, tzinfo=timezone.utc)
        assert start_of_next_month(now) == datetime(2025, 4, 1, tzinfo=timezone.utc)

    def test_december_rolls_over_the_year(self):
        now = datetime(2025, 12, 31, 23, 59, tzinfo=timezone.utc)
        assert start_of_next_month(now) == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_time_until_reset(self):
        now = datetime(2025, 6, 29, 12, 0, tzinfo=timezone.utc)
        remaining = time_until_reset(now)
        assert remaining["days"] == 1
        assert remaining["hours"] == 12
        assert remaining["reset_date"] == datetime(2025, 7, 1, tzinfo=timezone.utc)

    def test_available_invites_never_negative(self):
        membership = SimpleNamespace(invite_quota_monthly=2, invites_used_this_month=5)
        assert available_invites(membership) == 0
