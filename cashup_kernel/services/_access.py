"""Authorization checks shared by the write services."""

from cashup_kernel.domain.actor import Actor
from cashup_kernel.domain.requests import TripStatus
from cashup_kernel.exceptions import (
    AdminRequiredError,
    GuideLinkRequiredError,
    NotTripEditorError,
    TripLockedError,
)
from cashup_kernel.logging_config import get_logger
from cashup_kernel.models.trip import Trip

logger = get_logger("services.access")


def require_admin(actor: Actor, operation: str) -> None:
    if not actor.is_admin:
        logger.warning(
            "authorization_denied",
            extra={"operation": operation, "actor_id": actor.actor_id},
        )
        raise AdminRequiredError(operation, actor.actor_id)


def require_guide_link(actor: Actor) -> None:
    if actor.guide_id is None:
        raise GuideLinkRequiredError(actor.actor_id)


def can_edit_trip(actor: Actor, trip: Trip) -> bool:
    """Admins, the trip's creator and its trip leader may edit a trip."""
    if actor.is_admin:
        return True
    if trip.created_by_id is not None and trip.created_by_id == actor.account_id:
        return True
    return actor.guide_id is not None and trip.trip_leader_id == actor.guide_id


def require_trip_editor(actor: Actor, trip: Trip) -> None:
    """Editors per ``can_edit_trip``; a LOCKED trip admits admins only."""
    if not can_edit_trip(actor, trip):
        logger.warning(
            "authorization_denied",
            extra={"operation": "edit_trip", "trip_id": str(trip.id), "actor_id": actor.actor_id},
        )
        raise NotTripEditorError(str(trip.id), actor.actor_id)
    if not actor.is_admin and TripStatus(trip.status) is TripStatus.LOCKED:
        logger.warning(
            "authorization_denied",
            extra={"operation": "edit_locked_trip", "trip_id": str(trip.id), "actor_id": actor.actor_id},
        )
        raise TripLockedError(str(trip.id), actor.actor_id)


def require_status_change_allowed(actor: Actor, current: TripStatus, requested: TripStatus | None) -> None:
    """Only admins may move a trip to a status other than ``current``."""
    if requested is None or TripStatus(requested) is TripStatus(current):
        return
    require_admin(actor, "set_status")
