"""Admin records of B2B pallet shipments."""

import logging
from typing import Any

from crowdvine.models.base import utcnow
from crowdvine.models.pallet import PalletShipment
from crowdvine.schemas.logistics import ShipmentCreate, ShipmentItemIn, ShipmentResponse, ShipmentUpdate
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.producer_orders import build_shipment_items, shipment_cost_summary

from .._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)


def _items(items: list[ShipmentItemIn]) -> list:
    return build_shipment_items(
        [
            {
                "wine_id": optional_object_id(i.wine_id, "Wine"),
                "quantity": i.quantity,
                "cost_cents_override": i.cost_cents_override,
            }
            for i in items
        ]
    )


async def list_shipments(admin: RequireAdmin) -> list[ShipmentResponse]:
    shipments = await PalletShipment.find_all().sort(-PalletShipment.created_at).to_list()
    return [ShipmentResponse.model_validate(s) for s in shipments]


async def create_shipment(body: ShipmentCreate, admin: RequireAdmin) -> ShipmentResponse:
    shipment = PalletShipment(**body.model_dump(exclude={"items"}), items=_items(body.items))
    await shipment.insert()
    logger.info("Admin %s recorded shipment %s", admin.id, shipment.id)
    return ShipmentResponse.model_validate(shipment)


async def get_shipment(shipment_id: str, admin: RequireAdmin) -> dict[str, Any]:
    """A shipment with landed cost and B2B price per bottle."""
    return await shipment_cost_summary(await get_or_404(PalletShipment, shipment_id, "Shipment"))


async def update_shipment(shipment_id: str, body: ShipmentUpdate, admin: RequireAdmin) -> ShipmentResponse:
    shipment = await get_or_404(PalletShipment, shipment_id, "Shipment")
    changes = body.model_dump(exclude_unset=True, exclude={"items"})
    for field, value in changes.items():
        setattr(shipment, field, value)
    if body.items is not None:
        shipment.items = _items(body.items)
    shipment.updated_at = utcnow()
    await shipment.save()
    return ShipmentResponse.model_validate(shipment)


async def delete_shipment(shipment_id: str, admin: RequireAdmin) -> None:
    shipment = await get_or_404(PalletShipment, shipment_id, "Shipment")
    await shipment.delete()
