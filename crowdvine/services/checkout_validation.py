"""Six-bottle rule for checkout.

Bottles must be ordered in multiples of six per producer. Producers in the
same producer group are counted together.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from beanie import PydanticObjectId

from crowdvine.models import Producer, ProducerGroup, Wine

logger = logging.getLogger(__name__)

BOX_SIZE = 6


@dataclass
class ProducerValidation:
    producer_id: str
    producer_name: str
    producer_handle: str
    quantity: int
    is_valid: bool
    needed: int
    group_id: str | None = None
    group_name: str | None = None


@dataclass
class ValidationResult:
    is_valid: bool
    producer_validations: list[ProducerValidation] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class _Bucket:
    quantity: int = 0
    producer_ids: list[str] = field(default_factory=list)
    producer_names: list[str] = field(default_factory=list)
    group_id: str | None = None
    group_name: str | None = None


def producer_handle(name: str) -> str:
    return "-".join(name.lower().split())


def validate_six_bottle_rule(
    lines: Iterable[tuple[str, int]],
    wine_producers: dict[str, tuple[str, str]],
    producer_groups: dict[str, tuple[str, str]],
    box_size: int = BOX_SIZE,
) -> ValidationResult:
    """Check cart lines against the six-bottle rule.

    Args:
        lines: (wine_id, quantity) pairs.
        wine_producers: wine_id -> (producer_id, producer_name).
        producer_groups: producer_id -> (group_id, group_name).
    """
    buckets: dict[str, _Bucket] = {}

    for wine_id, quantity in lines:
        producer = wine_producers.get(wine_id)
        if producer is None or not producer[0]:
            logger.debug("Wine %s has no producer, skipping in validation", wine_id)
            continue

        producer_id, producer_name = producer
        group = producer_groups.get(producer_id)
        key = f"group_{group[0]}" if group else f"producer_{producer_id}"

        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = _Bucket(
                group_id=group[0] if group else None,
                group_name=group[1] if group else None,
            )
        bucket.quantity += quantity
        if producer_id not in bucket.producer_ids:
            bucket.producer_ids.append(producer_id)
        if producer_name not in bucket.producer_names:
            bucket.producer_names.append(producer_name)

    validations: list[ProducerValidation] = []
    errors: list[str] = []

    for bucket in buckets.values():
        remainder = bucket.quantity % box_size
        is_valid = remainder == 0
        needed = 0 if is_valid else box_size - remainder
        name = " + ".join(bucket.producer_names)

        validations.append(
            ProducerValidation(
                producer_id=bucket.producer_ids[0],
                producer_name=name,
                producer_handle=producer_handle(name),
                quantity=bucket.quantity,
                is_valid=is_valid,
                needed=needed,
                group_id=bucket.group_id,
                group_name=bucket.group_name,
            )
        )
        if not is_valid:
            label = bucket.group_name or name
            errors.append(
                f"{label}: {bucket.quantity} bottles. "
                f"Add {needed} more for {bucket.quantity + needed} total."
            )

    return ValidationResult(
        is_valid=all(v.is_valid for v in validations),
        producer_validations=validations,
        errors=errors,
    )


async def validate_cart_lines(lines: list[Any]) -> ValidationResult:
    """Load producers and groups for cart lines and apply the six-bottle rule."""
    if not lines:
        return ValidationResult(is_valid=True)

    wine_ids = list({PydanticObjectId(line.wine_id) for line in lines})
    wines = await Wine.find({"_id": {"$in": wine_ids}}).to_list()

    producer_ids = list({w.producer_id for w in wines if w.producer_id})
    producers = await Producer.find({"_id": {"$in": producer_ids}}).to_list()
    producer_names = {str(p.id): p.name for p in producers}

    wine_producers = {
        str(w.id): (str(w.producer_id), producer_names.get(str(w.producer_id), "Unknown Producer"))
        for w in wines
        if w.producer_id
    }

    producer_groups: dict[str, tuple[str, str]] = {}
    groups = await ProducerGroup.find({"producer_ids": {"$in": producer_ids}}).to_list()
    for group in groups:
        for pid in group.producer_ids:
            producer_groups[str(pid)] = (str(group.id), group.name)

    return validate_six_bottle_rule(
        [(str(line.wine_id), line.quantity) for line in lines],
        wine_producers,
        producer_groups,
    )
