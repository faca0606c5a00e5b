"""Discount codes: generation, lookup and redemption."""

import logging
import math
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta

from beanie import PydanticObjectId
from beanie.operators import Or

from crowdvine.models.base import utcnow
from crowdvine.models.discount import DiscountCode

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8
MAX_GENERATION_ATTEMPTS = 10


class DiscountError(Exception):
    """Raised when a discount code cannot be applied."""


@dataclass
class AppliedDiscount:
    code: str
    discount_percentage: float
    discount_cents: int


def random_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def generate_unique_code(length: int = CODE_LENGTH) -> str:
    """A code no existing discount code uses, retried on collision."""
    for _ in range(MAX_GENERATION_ATTEMPTS):
        code = random_code(length)
        if await DiscountCode.find_one(DiscountCode.code == code) is None:
            return code
    raise DiscountError("Could not generate a unique discount code")


def discount_amount(amount_cents: int, percentage: float) -> int:
    return math.floor(amount_cents * percentage / 100)


async def create_reward_code(
    user_id: PydanticObjectId,
    percentage: float,
    valid_days: int,
    invitation_id: PydanticObjectId | None = None,
) -> DiscountCode:
    """Single-use code earned by a member, e.g. for a successful invite."""
    code = DiscountCode(
        code=await generate_unique_code(),
        discount_percentage=percentage,
        usage_limit=1,
        expires_at=utcnow() + timedelta(days=valid_days),
        earned_by_user_id=user_id,
        earned_for_invitation_id=invitation_id,
    )
    await code.insert()
    logger.info("Reward code created for user %s (%.1f%%)", user_id, percentage)
    return code


async def find_usable_code(code: str) -> DiscountCode:
    """Look up a code that can still be redeemed.

    Raises:
        DiscountError: Unknown, inactive, expired or exhausted code.
    """
    discount = await DiscountCode.find_one(DiscountCode.code == code.strip().upper())
    if discount is None:
        raise DiscountError("Invalid discount code")
    if not discount.is_active:
        raise DiscountError("Discount code is no longer active")
    if discount.is_expired:
        raise DiscountError("Discount code has expired")
    if discount.is_exhausted:
        raise DiscountError("Discount code has already been used")
    return discount


async def apply_discount_code(code: str, user_id: PydanticObjectId, amount_cents: int) -> AppliedDiscount:
    """Redeem a code against an amount and record the use."""
    discount = await find_usable_code(code)
    # Earned codes are personal
    if discount.earned_by_user_id is not None and discount.earned_by_user_id != user_id:
        raise DiscountError("Invalid discount code")

    amount = discount_amount(amount_cents, discount.discount_percentage)
    discount.current_usage += 1
    discount.used_by_user_id = user_id
    discount.used_at = utcnow()
    if discount.is_exhausted:
        discount.is_active = False
    await discount.save()
    logger.info("Discount code %s used by %s: %d öre", discount.code, user_id, amount)
    return AppliedDiscount(discount.code, discount.discount_percentage, amount)


async def codes_for_user(user_id: PydanticObjectId) -> list[DiscountCode]:
    return await DiscountCode.find(
        Or(DiscountCode.earned_by_user_id == user_id, DiscountCode.used_by_user_id == user_id)
    ).sort(-DiscountCode.created_at).to_list()


def code_to_dict(code: DiscountCode) -> dict:
    return {
        "id": str(code.id),
        "code": code.code,
        "discount_percentage": code.discount_percentage,
        "usage_limit": code.usage_limit,
        "current_usage": code.current_usage,
        "expires_at": code.expires_at,
        "is_active": code.is_active,
        "is_expired": code.is_expired,
        "is_used": code.is_exhausted,
        "used_at": code.used_at,
        "created_at": code.created_at,
    }
