"""Precondition checks shared by the bill and recurrence managers."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from ..db import Database
from ..exceptions import ForbiddenError, NotFoundError, ValidationError
from ..models import Environment, Group, Member

logger = logging.getLogger(__name__)


def require_group(db: Database, group_id: int) -> Group:
    """Get a live group or raise NotFoundError."""
    group = db.get_group(group_id)
    if group is None or group.archived:
        raise NotFoundError("Group", group_id)
    return group


def require_environment(db: Database, group_id: int, environment_id: int) -> Environment:
    """Get a live environment that belongs to the group or raise NotFoundError."""
    environment = db.get_environment(environment_id)
    if environment is None or environment.archived or environment.group_id != group_id:
        raise NotFoundError("Environment", environment_id)
    return environment


def require_active_member(db: Database, group_id: int, user_id: int) -> Member:
    """Get the actor's active membership or raise ForbiddenError."""
    member = db.get_member(group_id, user_id)
    if member is None or not member.active:
        raise ForbiddenError(f"User {user_id} is not an active member of group {group_id}")
    return member


def is_group_admin(db: Database, group_id: int, user_id: int) -> bool:
    """Check whether the user is an active admin of the group."""
    member = db.get_member(group_id, user_id)
    return member is not None and member.active and member.role == "ADMIN"


def ensure_active_members(
    db: Database, group_id: int, user_ids: Iterable[int], label: str
) -> None:
    """Raise ValidationError unless every user is an active member of the group."""
    for user_id in user_ids:
        member = db.get_member(group_id, user_id)
        if member is None or not member.active:
            raise ValidationError(
                f"{label} {user_id} is not an active member of group {group_id}"
            )


def check_bill_fields(
    title: str | None,
    total_amount: Decimal | None,
    installments: int | None = 1,
) -> None:
    """Validate the scalar fields every bill and template needs."""
    if title is None or not title.strip():
        raise ValidationError("Title is required")
    if total_amount is None or total_amount <= 0:
        raise ValidationError("Total amount must be greater than zero")
    if installments is None or installments < 1:
        raise ValidationError("Installments must be at least 1")


def clean_text(value: str | None) -> str | None:
    """Strip free text, mapping blank values to None."""
    if value is None:
        return None
    return value.strip() or None


def resolve_receiver(
    db: Database,
    group_id: int,
    receiver_id: int | None,
    receiver_name: str | None,
) -> tuple[int | None, str | None]:
    """
    Work out who a bill's payments go to.

    A receiver id must point to an existing user. A name alone is matched
    best-effort against users with exactly that name, members of the group
    first; when nobody matches, the free-text name is kept on its own.

    Returns:
        Tuple of (receiver_id, receiver_name)

    Raises:
        ValidationError: If neither is given or the receiver id is unknown
    """
    receiver_name = clean_text(receiver_name)

    if receiver_id is not None:
        if db.get_user(receiver_id) is None:
            raise ValidationError(f"Receiver {receiver_id} does not exist")
        return receiver_id, receiver_name

    if receiver_name is None:
        raise ValidationError("A receiver or a receiver name is required")

    candidates = db.find_users_by_name(receiver_name)
    if not candidates:
        logger.warning(
            f"No user named '{receiver_name}', keeping free-text receiver "
            f"(payments need a linked receiver)"
        )
        return None, receiver_name

    for user in candidates:
        if db.get_member(group_id, user.id) is not None:
            return user.id, receiver_name
    return candidates[0].id, receiver_name
