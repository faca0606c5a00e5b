"""MongoDB document models for CrowdVine."""

from crowdvine.models.user import Address, User, UserRole
from crowdvine.models.security import LoginAttempt, RevokedToken
from crowdvine.models.producer import Producer, ProducerGroup
from crowdvine.models.wine import Wine, WineColor
from crowdvine.models.zone import PalletZone, ZoneType
from crowdvine.models.pallet import (
    CompletionCondition,
    CompletionGroup,
    CompletionRules,
    Pallet,
    PalletShipment,
    PalletStatus,
    ShipmentItem,
)
from crowdvine.models.cart import Cart, CartLine
from crowdvine.models.reservation import (
    ACTIVE_RESERVATION_STATUSES,
    DecisionStatus,
    PaymentStatus,
    Reservation,
    ReservationItem,
    ReservationStatus,
)
from crowdvine.models.membership import (
    ImpactPointEvent,
    IPEventType,
    Membership,
    MembershipLevel,
    ProgressionBuff,
)
from crowdvine.models.invitation import AccessRequest, AccessRequestStatus, InvitationCode
from crowdvine.models.discount import DiscountCode
from crowdvine.models.wine_box import WineBox, WineBoxItem
from crowdvine.models.upload_batch import UploadBatch, UploadStatus
from crowdvine.models.tasting import TastingParticipant, TastingRating, TastingStatus, WineTasting

__all__ = [
    # Accounts
    "User",
    "UserRole",
    "Address",
    "RevokedToken",
    "LoginAttempt",
    # Catalog
    "Producer",
    "ProducerGroup",
    "Wine",
    "WineColor",
    "WineBox",
    "WineBoxItem",
    # Logistics
    "PalletZone",
    "ZoneType",
    "Pallet",
    "PalletStatus",
    "PalletShipment",
    "ShipmentItem",
    "CompletionCondition",
    "CompletionGroup",
    "CompletionRules",
    # Orders
    "Cart",
    "CartLine",
    "Reservation",
    "ReservationItem",
    "ReservationStatus",
    "PaymentStatus",
    "DecisionStatus",
    "ACTIVE_RESERVATION_STATUSES",
    "DiscountCode",
    # Membership
    "Membership",
    "MembershipLevel",
    "ImpactPointEvent",
    "IPEventType",
    "ProgressionBuff",
    "InvitationCode",
    "AccessRequest",
    "AccessRequestStatus",
    # Upload
    "UploadBatch",
    "UploadStatus",
    # Tastings
    "WineTasting",
    "TastingParticipant",
    "TastingRating",
    "TastingStatus",
]
