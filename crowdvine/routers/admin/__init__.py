"""Admin back office router package."""

from fastapi import APIRouter

from .catalog import (
    create_group_endpoint,
    create_producer_endpoint,
    create_wine_endpoint,
    delete_group,
    delete_producer_endpoint,
    delete_wine_endpoint,
    get_producer,
    get_wine,
    get_wine_pallet_stock,
    list_groups,
    list_producers,
    list_wine_costs,
    list_wines,
    set_bulk_margin,
    update_group_endpoint,
    update_producer_endpoint,
    update_wine_endpoint,
)
from .invitations import (
    approve_request,
    bulk_delete_requests,
    create_invitation,
    list_access_requests,
    list_discount_codes,
    list_invitations,
    reject_request,
    run_invitation_cleanup,
)
from .memberships import (
    adjust_points,
    get_user_membership,
    list_memberships,
    memberships_by_level,
    update_level,
)
from .overview import get_admin_stats, list_bookings, list_users, set_user_role
from .pallets import (
    create_pallet,
    delete_pallet,
    get_pallet,
    list_pallet_reservations,
    list_pallets,
    move_pallet_reservation,
    regenerate_reservation_payment_link,
    reset_pallet_reservations,
    run_completion_check,
    update_pallet,
    update_pallet_status,
)
from .shipments import create_shipment, delete_shipment, get_shipment, list_shipments, update_shipment
from .wine_boxes import (
    create_wine_box,
    delete_wine_box,
    get_wine_box,
    list_boxes,
    set_wine_box_items,
    update_wine_box,
)
from .zones import create_zone, get_zone, list_zones, remove_zone, seed_zones, update_zone

router = APIRouter()

# Overview
router.add_api_route("/stats", get_admin_stats, methods=["GET"])
router.add_api_route("/users", list_users, methods=["GET"])
router.add_api_route("/users/{user_id}/role", set_user_role, methods=["PUT"])
router.add_api_route("/bookings", list_bookings, methods=["GET"])

# Memberships
router.add_api_route("/memberships", list_memberships, methods=["GET"])
router.add_api_route("/memberships/by-level", memberships_by_level, methods=["GET"])
router.add_api_route("/memberships/{user_id}", get_user_membership, methods=["GET"])
router.add_api_route("/memberships/{user_id}/level", update_level, methods=["PUT"])
router.add_api_route("/memberships/{user_id}/points", adjust_points, methods=["POST"])

# Producers and groups
router.add_api_route("/producers", list_producers, methods=["GET"])
router.add_api_route("/producers", create_producer_endpoint, methods=["POST"], status_code=201)
router.add_api_route("/producers/{producer_id}", get_producer, methods=["GET"])
router.add_api_route("/producers/{producer_id}", update_producer_endpoint, methods=["PUT"])
router.add_api_route(
    "/producers/{producer_id}",
    delete_producer_endpoint,
    methods=["DELETE"],
    status_code=204,
)
router.add_api_route("/groups", list_groups, methods=["GET"])
router.add_api_route("/groups", create_group_endpoint, methods=["POST"], status_code=201)
router.add_api_route("/groups/{group_id}", update_group_endpoint, methods=["PUT"])
router.add_api_route("/groups/{group_id}", delete_group, methods=["DELETE"], status_code=204)

# Wines - Note: /costs and /margin must come before /{wine_id}
router.add_api_route("/wines", list_wines, methods=["GET"])
router.add_api_route("/wines", create_wine_endpoint, methods=["POST"], status_code=201)
router.add_api_route("/wines/costs", list_wine_costs, methods=["GET"])
router.add_api_route("/wines/margin", set_bulk_margin, methods=["PUT"])
router.add_api_route("/wines/{wine_id}", get_wine, methods=["GET"])
router.add_api_route("/wines/{wine_id}", update_wine_endpoint, methods=["PUT"])
router.add_api_route("/wines/{wine_id}", delete_wine_endpoint, methods=["DELETE"], status_code=204)
router.add_api_route("/wines/{wine_id}/pallet-stock", get_wine_pallet_stock, methods=["GET"])

# Wine boxes
router.add_api_route("/wine-boxes", list_boxes, methods=["GET"])
router.add_api_route("/wine-boxes", create_wine_box, methods=["POST"], status_code=201)
router.add_api_route("/wine-boxes/{box_id}", get_wine_box, methods=["GET"])
router.add_api_route("/wine-boxes/{box_id}", update_wine_box, methods=["PUT"])
router.add_api_route("/wine-boxes/{box_id}/items", set_wine_box_items, methods=["PUT"])
router.add_api_route("/wine-boxes/{box_id}", delete_wine_box, methods=["DELETE"], status_code=204)

# Zones - Note: /seed must come before /{zone_id}
router.add_api_route("/zones", list_zones, methods=["GET"])
router.add_api_route("/zones", create_zone, methods=["POST"], status_code=201)
router.add_api_route("/zones/seed", seed_zones, methods=["POST"])
router.add_api_route("/zones/{zone_id}", get_zone, methods=["GET"])
router.add_api_route("/zones/{zone_id}", update_zone, methods=["PUT"])
router.add_api_route("/zones/{zone_id}", remove_zone, methods=["DELETE"], status_code=204)

# Pallets
router.add_api_route("/pallets", list_pallets, methods=["GET"])
router.add_api_route("/pallets", create_pallet, methods=["POST"], status_code=201)
router.add_api_route("/pallets/move-reservation", move_pallet_reservation, methods=["POST"])
router.add_api_route("/pallets/{pallet_id}", get_pallet, methods=["GET"])
router.add_api_route("/pallets/{pallet_id}", update_pallet, methods=["PUT"])
router.add_api_route("/pallets/{pallet_id}", delete_pallet, methods=["DELETE"], status_code=204)
router.add_api_route("/pallets/{pallet_id}/status", update_pallet_status, methods=["PUT"])
router.add_api_route("/pallets/{pallet_id}/check-completion", run_completion_check, methods=["POST"])
router.add_api_route("/pallets/{pallet_id}/reservations", list_pallet_reservations, methods=["GET"])
router.add_api_route(
    "/pallets/{pallet_id}/reset-reservations",
    reset_pallet_reservations,
    methods=["POST"],
)
router.add_api_route(
    "/reservations/{reservation_id}/payment-link",
    regenerate_reservation_payment_link,
    methods=["POST"],
)

# B2B shipments
router.add_api_route("/shipments", list_shipments, methods=["GET"])
router.add_api_route("/shipments", create_shipment, methods=["POST"], status_code=201)
router.add_api_route("/shipments/{shipment_id}", get_shipment, methods=["GET"])
router.add_api_route("/shipments/{shipment_id}", update_shipment, methods=["PUT"])
router.add_api_route("/shipments/{shipment_id}", delete_shipment, methods=["DELETE"], status_code=204)

# Invitations, discount codes and access requests
router.add_api_route("/invitations", list_invitations, methods=["GET"])
router.add_api_route("/invitations", create_invitation, methods=["POST"], status_code=201)
router.add_api_route("/invitations/cleanup", run_invitation_cleanup, methods=["POST"])
router.add_api_route("/discount-codes", list_discount_codes, methods=["GET"])
router.add_api_route("/access-requests", list_access_requests, methods=["GET"])
router.add_api_route("/access-requests/delete", bulk_delete_requests, methods=["POST"])
router.add_api_route("/access-requests/{request_id}/approve", approve_request, methods=["POST"])
router.add_api_route("/access-requests/{request_id}/reject", reject_request, methods=["POST"])

__all__ = ["router"]
