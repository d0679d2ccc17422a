from __future__ import annotations

from ..extensions import db
from fuelcash.time_utils import to_utc_z


ROLE_EMPLOYEE = "employee"
ROLE_MANAGER = "manager"
ROLE_OWNER = "owner"

ROLES = (ROLE_EMPLOYEE, ROLE_MANAGER, ROLE_OWNER)


class User(db.Model):
    """
    Station staff member.

    Only the identity facts the custody chain needs live here: role,
    home station and reporting manager. Credentials are handled elsewhere.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_EMPLOYEE, index=True)

    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=True, index=True)
    manager_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    station = db.relationship("Station", foreign_keys=[station_id], backref=db.backref("staff", lazy=True))
    manager = db.relationship("User", remote_side=[id])

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "station_id": self.station_id,
            "manager_user_id": self.manager_user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
