# Overview: Role and reporting-line lookups used to route handovers to their recipient.

from __future__ import annotations

from fuelcash.extensions import db
from fuelcash.models import Station, User
from fuelcash.models.users import ROLES, ROLE_EMPLOYEE


class IdentityError(Exception):
    """Raised when user records cannot be created."""
    pass


def create_user(
    name: str,
    role: str = ROLE_EMPLOYEE,
    *,
    email: str | None = None,
    station_id: int | None = None,
    manager_user_id: int | None = None,
) -> User:
    if not name:
        raise IdentityError("User name is required")
    if role not in ROLES:
        raise IdentityError(f"Invalid role: {role}")

    user = User(
        name=name,
        email=email,
        role=role,
        station_id=station_id,
        manager_user_id=manager_user_id,
    )
    db.session.add(user)
    db.session.commit()
    return user


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def get_station_manager(station_id: int) -> int | None:
    station = db.session.get(Station, station_id)
    return station.manager_user_id if station else None


def get_owner(station_id: int) -> int | None:
    station = db.session.get(Station, station_id)
    return station.owner_user_id if station else None


def get_manager_of(user_id: int | None) -> int | None:
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    return user.manager_user_id if user else None
