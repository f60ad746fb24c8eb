import logging
from typing import Iterable

from campusvibe import models
from campusvibe.errors import AuthorizationError

logger = logging.getLogger("campusvibe.permissions")

Role = models.Role

ORGANIZER_ROLES = frozenset({Role.committee, Role.admin})
ANY_ROLE = frozenset(Role)

# Allowed roles per operation; checked before the operation body runs
OPERATION_ROLES = {
    "issue_ticket": ANY_ROLE,
    "submit_payment_proof": ANY_ROLE,
    "review_payment": ORGANIZER_ROLES,
    "scan_check_in": ORGANIZER_ROLES,
    "manual_check_in": ORGANIZER_ROLES,
    "view_attendance": ORGANIZER_ROLES,
    "create_event": ORGANIZER_ROLES,
    "manage_event": ORGANIZER_ROLES,
    "manage_discounts": ORGANIZER_ROLES,
    "view_analytics": ORGANIZER_ROLES,
    "join_waitlist": ANY_ROLE,
    "promote_user": frozenset({Role.admin}),
    "admin_dashboard": frozenset({Role.admin}),
}


def has_any_role(user: models.User, roles: Iterable[Role]) -> bool:
    return user is not None and Role(user.role) in set(roles)


def authorize(user: models.User, operation: str) -> models.User:
    """Raise AuthorizationError unless the user's role may run ``operation``."""
    allowed = OPERATION_ROLES[operation]
    if not has_any_role(user, allowed):
        logger.warning(f"User {getattr(user, 'id', None)} with role {getattr(user, 'role', None)} denied '{operation}'")
        raise AuthorizationError(f"Your role is not allowed to {operation.replace('_', ' ')}")
    return user


def is_event_manager(user: models.User, event: models.Event) -> bool:
    if user is None:
        return False
    if Role(user.role) == Role.admin:
        return True
    return Role(user.role) == Role.committee and event.created_by == user.id


def ensure_event_manager(user: models.User, event: models.Event) -> models.User:
    """Only the event's creator (or an admin) may manage it."""
    if not is_event_manager(user, event):
        logger.warning(f"User {user.id} is not a manager of event {event.id}")
        raise AuthorizationError("Only the event organizer or an admin can do this")
    return user
