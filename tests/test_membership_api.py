"""API tests for membership, invitations and access requests."""

from datetime import timedelta

from beanie import PydanticObjectId

from crowdvine.models import (
    ImpactPointEvent,
    IPEventType,
    Membership,
    MembershipLevel,
    ProgressionBuff,
    Reservation,
    ReservationItem,
    ReservationStatus,
    User,
)
from crowdvine.models.base import utcnow
from crowdvine.models.discount import DiscountCode
from crowdvine.models.invitation import AccessRequest, AccessRequestStatus, InvitationCode
from crowdvine.services.membership import (
    active_buffs,
    apply_buffs,
    award_for_reservation,
    award_impact_points,
)
from crowdvine.services.membership.points import award_for_pallet_milestones

from tests.conftest import api_client, create_user


class TestMembership:
    async def test_overview(self, client):
        response = await client.get("/api/membership/me")

        assert response.status_code == 200
        data = response.json()
        assert data["level"] == "basic"
        assert data["impact_points"] == 0
        assert data["invites"]["total"] == 2
        assert data["invites"]["available"] == 2
        assert data["next_level"]["level"] == "brons"

    async def test_no_membership(self, init_test_db):
        user = await create_user("nomember@example.com", level=None)
        async with api_client(user) as ac:
            response = await ac.get("/api/membership/me")
        assert response.status_code == 404

    async def test_share_is_awarded_once_a_day(self, client, member):
        first = (await client.post("/api/membership/share")).json()
        second = (await client.post("/api/membership/share")).json()

        assert first == {"awarded": True, "impact_points": 1}
        assert second == {"awarded": False, "impact_points": None}

    async def test_review_and_share_are_separate(self, client):
        await client.post("/api/membership/share")
        review = (await client.post("/api/membership/review")).json()
        assert review["awarded"] is True
        assert review["impact_points"] == 2


class TestInvitations:
    async def test_create_uses_quota(self, client, member):
        response = await client.post("/api/invitations", json={})

        assert response.status_code == 201
        invitation = response.json()
        assert len(invitation["code"]) == 12
        assert invitation["is_usable"] is True
        assert invitation["signup_url"].endswith(f"/i/{invitation['code']}")

        membership = await Membership.find_one(Membership.user_id == member.id)
        assert membership.invites_used_this_month == 1

    async def test_quota_exhausted(self, client):
        assert (await client.post("/api/invitations", json={})).status_code == 201
        assert (await client.post("/api/invitations", json={})).status_code == 201

        response = await client.post("/api/invitations", json={})
        assert response.status_code == 403
        assert "No invites remaining" in response.json()["detail"]

    async def test_requester_cannot_invite(self, init_test_db):
        requester = await create_user("waiting@example.com", level=MembershipLevel.REQUESTER)
        async with api_client(requester) as ac:
            response = await ac.post("/api/invitations", json={})
        assert response.status_code == 403

    async def test_list_and_deactivate(self, client):
        created = (await client.post("/api/invitations", json={"expires_in_days": 3})).json()

        listed = (await client.get("/api/invitations")).json()
        assert [i["id"] for i in listed] == [created["id"]]

        response = await client.delete(f"/api/invitations/{created['id']}")
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        validation = (await client.get(f"/api/invitations/validate/{created['code']}")).json()
        assert validation == {"valid": False}

    async def test_cannot_deactivate_someone_elses_code(self, client, init_test_db):
        other = await create_user("other@example.com")
        async with api_client(other) as ac:
            created = (await ac.post("/api/invitations", json={})).json()

        response = await client.delete(f"/api/invitations/{created['id']}")
        assert response.status_code == 404

    async def test_validate_is_case_insensitive(self, client, unauthenticated_client):
        created = (await client.post("/api/invitations", json={})).json()
        response = await unauthenticated_client.get(
            f"/api/invitations/validate/{created['code'].lower()}"
        )
        assert response.json()["valid"] is True

    async def test_redeem_creates_member_and_rewards_inviter(
        self, client, member, unauthenticated_client
    ):
        code = (await client.post("/api/invitations", json={})).json()["code"]

        response = await unauthenticated_client.post(
            "/api/invitations/redeem",
            json={
                "code": code,
                "email": "Friend@Example.com",
                "password": "friendpassword",
                "full_name": "A Friend",
            },
        )

        assert response.status_code == 201
        assert response.json()["email"] == "friend@example.com"

        friend = await User.get(PydanticObjectId(response.json()["id"]))
        assert friend.access_granted_at is not None
        assert friend.invite_code_used == code
        friend_membership = await Membership.find_one(Membership.user_id == friend.id)
        assert friend_membership.level == MembershipLevel.BASIC
        assert friend_membership.invited_by_user_id == member.id

        inviter_membership = await Membership.find_one(Membership.user_id == member.id)
        assert inviter_membership.impact_points == 1
        rewards = await DiscountCode.find(DiscountCode.earned_by_user_id == member.id).to_list()
        assert len(rewards) == 1
        assert rewards[0].usage_limit == 1

        codes = (await client.get("/api/discount-codes")).json()
        assert [c["code"] for c in codes] == [rewards[0].code]

    async def test_code_cannot_be_redeemed_twice(self, client, unauthenticated_client):
        code = (await client.post("/api/invitations", json={})).json()["code"]
        body = {"code": code, "email": "first@example.com", "password": "friendpassword"}
        assert (await unauthenticated_client.post("/api/invitations/redeem", json=body)).status_code == 201

        body["email"] = "second@example.com"
        response = await unauthenticated_client.post("/api/invitations/redeem", json=body)
        assert response.status_code == 400
        assert "Invalid or expired" in response.json()["detail"]

    async def test_existing_email_is_rejected(self, client, member, unauthenticated_client):
        code = (await client.post("/api/invitations", json={})).json()["code"]
        response = await unauthenticated_client.post(
            "/api/invitations/redeem",
            json={"code": code, "email": member.email, "password": "friendpassword"},
        )
        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]


class TestAccessRequests:
    async def test_submit(self, unauthenticated_client):
        response = await unauthenticated_client.post(
            "/api/access-requests",
            json={"email": "Curious@Example.com", "full_name": "Curious", "message": "Hi"},
        )

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        request = await AccessRequest.find_one(AccessRequest.email == "curious@example.com")
        assert request is not None

    async def test_one_open_request_per_email(self, unauthenticated_client):
        body = {"email": "curious@example.com"}
        assert (await unauthenticated_client.post("/api/access-requests", json=body)).status_code == 201

        response = await unauthenticated_client.post("/api/access-requests", json=body)
        assert response.status_code == 400
        assert "already pending" in response.json()["detail"]

    async def test_members_do_not_need_access(self, member, unauthenticated_client):
        response = await unauthenticated_client.post(
            "/api/access-requests", json={"email": member.email}
        )
        assert response.status_code == 400

    async def test_admin_approval_sends_invitation(
        self, admin_client, unauthenticated_client, mock_email_service
    ):
        submitted = (
            await unauthenticated_client.post(
                "/api/access-requests", json={"email": "curious@example.com"}
            )
        ).json()

        response = await admin_client.post(f"/api/admin/access-requests/{submitted['id']}/approve")

        assert response.status_code == 200
        approved = response.json()
        assert approved["status"] == "approved"
        assert approved["invitation_code"]
        invitation = await InvitationCode.find_one(InvitationCode.code == approved["invitation_code"])
        assert invitation.email == "curious@example.com"
        mock_email_service.send_access_approved_email.assert_awaited_once_with(
            "curious@example.com", approved["invitation_code"]
        )

        again = await admin_client.post(f"/api/admin/access-requests/{submitted['id']}/approve")
        assert again.status_code == 400

    async def test_approving_registered_requester_grants_access(
        self, admin_client, unauthenticated_client, mock_email_service
    ):
        requester = await create_user("waiting@example.com", level=MembershipLevel.REQUESTER)
        submitted = (
            await unauthenticated_client.post(
                "/api/access-requests", json={"email": requester.email}
            )
        ).json()

        response = await admin_client.post(f"/api/admin/access-requests/{submitted['id']}/approve")

        assert response.status_code == 200
        assert response.json()["invitation_code"] is None
        membership = await Membership.find_one(Membership.user_id == requester.id)
        assert membership.level == MembershipLevel.BASIC
        assert (await User.get(requester.id)).access_granted_at is not None
        mock_email_service.send_access_approved_email.assert_not_awaited()

    async def test_reject_and_filter(self, admin_client, unauthenticated_client):
        submitted = (
            await unauthenticated_client.post(
                "/api/access-requests", json={"email": "nope@example.com"}
            )
        ).json()

        response = await admin_client.post(f"/api/admin/access-requests/{submitted['id']}/reject")
        assert response.json()["status"] == "rejected"

        pending = (await admin_client.get("/api/admin/access-requests?status=pending")).json()
        rejected = (await admin_client.get("/api/admin/access-requests?status=rejected")).json()
        assert pending == []
        assert [r["id"] for r in rejected] == [submitted["id"]]

    async def test_bulk_delete(self, admin_client):
        request = AccessRequest(email="old@example.com", status=AccessRequestStatus.REJECTED)
        await request.insert()

        response = await admin_client.post(
            "/api/admin/access-requests/delete", json={"ids": [str(request.id)]}
        )
        assert response.json() == {"deleted": 1}

    async def test_members_cannot_review_requests(self, client):
        response = await client.get("/api/admin/access-requests")
        assert response.status_code == 403


async def place_order(user, bottles=6, pallet_id=None) -> Reservation:
    reservation = Reservation(
        user_id=user.id,
        pallet_id=pallet_id,
        items=[ReservationItem(wine_id=PydanticObjectId(), quantity=bottles)],
    )
    await reservation.insert()
    return reservation


async def events_of(user, event_type: IPEventType) -> list[ImpactPointEvent]:
    return await ImpactPointEvent.find(
        ImpactPointEvent.user_id == user.id, ImpactPointEvent.event_type == event_type
    ).to_list()


async def points_of(user) -> int:
    return (await Membership.find_one(Membership.user_id == user.id)).impact_points


class TestImpactPoints:
    """Points awarded for orders, invites and pallet milestones."""

    async def test_own_order_points(self, member):
        assert await award_for_reservation(await place_order(member, bottles=6)) == 1
        assert len(await events_of(member, IPEventType.OWN_ORDER)) == 1

        assert await award_for_reservation(await place_order(member, bottles=12)) == 2
        assert len(await events_of(member, IPEventType.OWN_ORDER_LARGE)) == 1
        assert await points_of(member) == 3

    async def test_small_order_earns_nothing(self, member):
        assert await award_for_reservation(await place_order(member, bottles=5)) == 0
        assert await points_of(member) == 0
        assert await ImpactPointEvent.find(ImpactPointEvent.user_id == member.id).count() == 0

    async def test_inviter_rewards_for_first_and_second_order(self, init_test_db):
        inviter = await create_user("inviter@example.com")
        invited = await create_user("invited@example.com")
        membership = await Membership.find_one(Membership.user_id == invited.id)
        membership.invited_by_user_id = inviter.id
        await membership.save()

        await award_for_reservation(await place_order(invited))
        assert await points_of(inviter) == 2
        [first] = await events_of(inviter, IPEventType.INVITE_RESERVATION)
        assert first.related_user_id == invited.id

        await award_for_reservation(await place_order(invited))
        assert await points_of(inviter) == 3
        assert len(await events_of(inviter, IPEventType.INVITE_SECOND_ORDER)) == 1

        await award_for_reservation(await place_order(invited))
        assert await points_of(inviter) == 3
        assert len(await events_of(inviter, IPEventType.INVITE_SECOND_ORDER)) == 1

    async def test_pallet_milestones_awarded_once(self, member):
        for _ in range(3):
            await place_order(member, bottles=1, pallet_id=PydanticObjectId())

        assert await award_for_pallet_milestones(member.id) == 3
        assert await award_for_pallet_milestones(member.id) == 0

        for _ in range(3):
            await place_order(member, bottles=1, pallet_id=PydanticObjectId())
        assert await award_for_pallet_milestones(member.id) == 5
        assert await award_for_pallet_milestones(member.id) == 0

        assert len(await events_of(member, IPEventType.PALLET_MILESTONE)) == 1
        assert len(await events_of(member, IPEventType.PALLET_MILESTONE_6)) == 1
        assert await events_of(member, IPEventType.PALLET_MILESTONE_12) == []
        assert await points_of(member) == 8

    async def test_cancelled_orders_do_not_count_towards_milestones(self, member):
        for _ in range(3):
            reservation = await place_order(member, bottles=1, pallet_id=PydanticObjectId())
            reservation.status = ReservationStatus.CANCELLED
            await reservation.save()
        assert await award_for_pallet_milestones(member.id) == 0


class TestLevelUpgrade:
    async def test_upgrade_records_event_raises_quota_and_clears_buffs(self, member):
        await ProgressionBuff(user_id=member.id, buff_percentage=0.5).insert()

        membership = await award_impact_points(member.id, IPEventType.MANUAL_ADJUSTMENT, 5)

        assert membership.level == MembershipLevel.BRONS
        assert membership.invite_quota_monthly == 5
        [upgrade] = await events_of(member, IPEventType.LEVEL_UPGRADE)
        assert upgrade.points_earned == 0
        assert upgrade.description == "Upgraded from basic to brons"
        assert await active_buffs(member.id) == []

    async def test_no_upgrade_below_threshold(self, member):
        membership = await award_impact_points(member.id, IPEventType.MANUAL_ADJUSTMENT, 4)
        assert membership.level == MembershipLevel.BASIC
        assert await events_of(member, IPEventType.LEVEL_UPGRADE) == []

    async def test_admin_level_is_never_replaced(self, admin_user):
        membership = await award_impact_points(admin_user.id, IPEventType.MANUAL_ADJUSTMENT, 80)
        assert membership.level == MembershipLevel.ADMIN


class TestProgressionBuffs:
    async def test_buffs_created_at_thresholds(self, member):
        await award_impact_points(member.id, IPEventType.MANUAL_ADJUSTMENT, 2)
        buffs = await active_buffs(member.id)
        assert [(b.ip_threshold, b.buff_percentage) for b in buffs] == [(2, 0.5)]

        await award_impact_points(member.id, IPEventType.MANUAL_ADJUSTMENT, 2)
        buffs = await active_buffs(member.id)
        assert sorted(b.ip_threshold for b in buffs) == [2, 4]

    async def test_apply_marks_buffs_used(self, member):
        await award_impact_points(member.id, IPEventType.MANUAL_ADJUSTMENT, 4)
        order_id = PydanticObjectId()

        assert await apply_buffs(member.id, order_id) == (1.0, 2)
        assert await active_buffs(member.id) == []
        used = await ProgressionBuff.find(ProgressionBuff.user_id == member.id).to_list()
        assert all(b.used_on_order_id == order_id and b.used_at is not None for b in used)

    async def test_buffs_over_the_cap_stay_for_the_next_order(self, member):
        start = utcnow()
        for i in range(4):
            await ProgressionBuff(
                user_id=member.id, buff_percentage=2.0, earned_at=start + timedelta(seconds=i)
            ).insert()

        assert await apply_buffs(member.id, PydanticObjectId()) == (4.0, 2)
        assert len(await active_buffs(member.id)) == 2

        assert await apply_buffs(member.id, PydanticObjectId()) == (4.0, 2)
        assert await active_buffs(member.id) == []
