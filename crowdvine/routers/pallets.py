"""Public pallet endpoints."""

from typing import Any

from fastapi import APIRouter

from crowdvine.models.pallet import Pallet
from crowdvine.services.pallets import open_pallets_with_fill, pallet_bottle_count, pallet_to_dict

from ._common import get_or_404

router = APIRouter()


@router.get("")
async def list_open_pallets() -> list[dict[str, Any]]:
    """Open pallets with how full they are."""
    return await open_pallets_with_fill()


@router.get("/{pallet_id}")
async def get_pallet(pallet_id: str) -> dict[str, Any]:
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    return pallet_to_dict(pallet, await pallet_bottle_count(pallet.id))
