from __future__ import annotations

from ..extensions import db
from pos_engine.time_utils import to_utc_z


ROLE_SUPER_ADMIN = "super_admin"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"

# Roles that may approve voids, refunds and manual discounts on their own
ELEVATED_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_MANAGER})


class User(db.Model):
    """
    Operator accounts used for attribution and supervisor approval.

    Login and sessions live outside the sale engine; this table only
    carries what the engine reads: role, active flag, void/refund
    capabilities and the bcrypt-hashed supervisor PIN.

    WHY: Every sale, void and refund must name who did it and who
    authorized it.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False, default="")
    last_name = db.Column(db.String(100), nullable=False, default="")

    # Bcrypt hashed password (login is handled by the auth service)
    password_hash = db.Column(db.String(255), nullable=True)

    # Bcrypt hashed PIN used to approve another operator's void/refund
    supervisor_pin_hash = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(32), nullable=False, default=ROLE_CASHIER, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    can_authorize_void = db.Column(db.Boolean, nullable=False, default=False)
    can_authorize_refund = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.username

    @property
    def is_elevated(self) -> bool:
        return (self.role or "").lower() in ELEVATED_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "can_authorize_void": self.can_authorize_void,
            "can_authorize_refund": self.can_authorize_refund,
            "has_supervisor_pin": self.supervisor_pin_hash is not None,
            "created_at": to_utc_z(self.created_at),
        }
