# Overview: Supervisor PINs and void/refund authorization.

"""
Void/refund authorization.

An operator authorizes their own void/refund when they hold the action's
capability flag or an elevated role (super_admin, manager). Anyone else
needs a supervisor who holds it, identified by id and confirmed by PIN.

SECURITY NOTES:
- PINs are 4-6 digits, stored as bcrypt hashes (BCRYPT_ROUNDS)
- PINs are never logged
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..errors import BadRequestError, ForbiddenError, NotFoundError, UnauthorizedError
from ..extensions import db
from ..models import User


ACTION_VOID = "void"
ACTION_REFUND = "refund"

_CAPABILITY_FLAGS = {
    ACTION_VOID: "can_authorize_void",
    ACTION_REFUND: "can_authorize_refund",
}

PIN_PATTERN = re.compile(r"^\d{4,6}$")


def validate_pin(pin: str) -> None:
    if not isinstance(pin, str) or not PIN_PATTERN.match(pin):
        raise BadRequestError("PIN must be 4-6 digits")


def hash_pin(pin: str) -> str:
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    if not pin or not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def set_supervisor_pin(user_id: int, pin: str) -> User:
    validate_pin(pin)
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", details={"user_id": user_id})
    user.supervisor_pin_hash = hash_pin(pin)
    db.session.commit()
    return user


def has_capability(user: User, action: str) -> bool:
    """True when the user may authorize `action` (void or refund)."""
    flag = _CAPABILITY_FLAGS.get(action)
    if flag is None:
        raise ValueError(f"Unknown authorization action: {action}")
    if not user.is_active:
        return False
    return bool(getattr(user, flag)) or user.is_elevated


def load_operator(user_id: int | None) -> User:
    """Load the acting operator; missing or inactive is Unauthorized."""
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        raise UnauthorizedError("Operator is not recognized")
    return user


def resolve_authorizer(
    actor: User,
    action: str,
    *,
    supervisor_id: int | None = None,
    supervisor_pin: str | None = None,
) -> User:
    """
    Return the user who authorizes `action` for `actor`.

    The actor when self-authorized, otherwise the PIN-verified supervisor.
    """
    if has_capability(actor, action):
        return actor

    if not supervisor_id:
        raise BadRequestError(f"Supervisor authorization is required to {action} this sale")
    if not supervisor_pin:
        raise BadRequestError("Supervisor PIN is required")
    if isinstance(supervisor_id, bool) or not isinstance(supervisor_id, int):
        raise BadRequestError("supervisor_id must be an integer", details={"field": "supervisor_id"})
    if not isinstance(supervisor_pin, str):
        raise BadRequestError("Supervisor PIN must be a string", details={"field": "supervisor_pin"})

    supervisor = db.session.get(User, supervisor_id)
    if supervisor is None:
        raise NotFoundError("Supervisor", details={"supervisor_id": supervisor_id})
    if not supervisor.is_active:
        current_app.logger.warning(
            "Inactive supervisor %s used to %s (actor %s)", supervisor.id, action, actor.id
        )
        raise ForbiddenError("Supervisor account is inactive")
    if not has_capability(supervisor, action):
        current_app.logger.warning(
            "Supervisor %s lacks %s authority (actor %s)", supervisor.id, action, actor.id
        )
        raise ForbiddenError(f"Supervisor is not authorized to {action} sales")
    if not supervisor.supervisor_pin_hash:
        raise UnauthorizedError("Supervisor PIN not set")
    if not verify_pin(supervisor_pin, supervisor.supervisor_pin_hash):
        current_app.logger.warning(
            "Invalid supervisor PIN for %s on %s (actor %s)", supervisor.id, action, actor.id
        )
        raise UnauthorizedError("Invalid supervisor PIN")
    return supervisor


def resolve_discount_approver(approver_id: int | None) -> User:
    """Manual discount reasons that require approval need an active elevated user."""
    if not approver_id:
        raise ForbiddenError("This discount reason requires manager approval")
    approver = db.session.get(User, approver_id)
    if approver is None or not approver.is_active or not approver.is_elevated:
        raise ForbiddenError(
            "Discount approver is not authorized",
            details={"discount_approved_by": approver_id},
        )
    return approver
