from __future__ import annotations

from enum import Enum

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import validates

from ..extensions import db
from fuelcash.time_utils import to_utc_z, to_iso_date


class HandoverStage(str, Enum):
    """Custody stages, in chain order."""
    SHIFT_COLLECTION = "shift_collection"
    EMPLOYEE_TO_MANAGER = "employee_to_manager"
    MANAGER_TO_OWNER = "manager_to_owner"
    DEPOSIT_TO_BANK = "deposit_to_bank"


HANDOVER_STATUS_PENDING = "PENDING"
HANDOVER_STATUS_CONFIRMED = "CONFIRMED"
HANDOVER_STATUS_DISPUTED = "DISPUTED"
HANDOVER_STATUS_RESOLVED = "RESOLVED"

# Both terminal states count as "prior stage accepted" for sequencing
SETTLED_HANDOVER_STATUSES = (HANDOVER_STATUS_CONFIRMED, HANDOVER_STATUS_RESOLVED)


class CashHandover(db.Model):
    """
    One custody transfer of cash: employee -> manager -> owner -> bank.

    LIFECYCLE:
    - PENDING: Created, waiting for the receiving party
    - CONFIRMED: Received within tolerance (terminal)
    - DISPUTED: Received with a variance beyond tolerance
    - RESOLVED: Dispute settled at a final amount (terminal)

    previous_handover_id is a lookup-only link to the accepted handover of
    the prior stage. It carries no foreign key so deleting a handover never
    cascades; integrity checks report dangling links instead.
    """
    __tablename__ = "cash_handovers"
    __table_args__ = (
        db.Index("ix_cash_handovers_station_date", "station_id", "occurred_on"),
        db.Index("ix_cash_handovers_chain_lookup", "station_id", "stage_type", "from_user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    stage_type = db.Column(db.String(32), nullable=False, index=True)

    from_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    # NULL only for bank deposits (self-confirmed)
    to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Amounts in cents; variance = actual - expected, always computed here
    expected_amount_cents = db.Column(db.Integer, nullable=False)
    actual_amount_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=HANDOVER_STATUS_PENDING, index=True)

    previous_handover_id = db.Column(db.Integer, nullable=True, index=True)
    source_shift_id = db.Column(db.Integer, nullable=True, index=True)

    occurred_on = db.Column(db.Date, nullable=False, index=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Bank deposit details
    bank_name = db.Column(db.String(100), nullable=True)
    deposit_reference = db.Column(db.String(50), nullable=True)
    deposit_receipt_url = db.Column(db.Text, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    dispute_notes = db.Column(db.Text, nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    station = db.relationship("Station", backref=db.backref("handovers", lazy=True))
    from_user = db.relationship("User", foreign_keys=[from_user_id])
    to_user = db.relationship("User", foreign_keys=[to_user_id])
    confirmed_by = db.relationship("User", foreign_keys=[confirmed_by_user_id])
    resolved_by = db.relationship("User", foreign_keys=[resolved_by_user_id])

    __mapper_args__ = {"version_id_col": version_id}

    @validates("previous_handover_id")
    def _validate_previous_handover_id(self, key, value):
        if key not in self.__dict__ and sa_inspect(self).persistent:
            # Expired or never loaded: pull the stored value before comparing
            current = getattr(self, key)
        else:
            current = self.__dict__.get(key)
        if current is not None and value != current:
            raise ValueError("previous_handover_id is immutable once set")
        return value

    @property
    def stage(self) -> HandoverStage:
        return HandoverStage(self.stage_type)

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_HANDOVER_STATUSES

    def __repr__(self) -> str:
        return f"<CashHandover id={self.id} stage={self.stage_type} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "stage_type": self.stage_type,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "expected_amount_cents": self.expected_amount_cents,
            "actual_amount_cents": self.actual_amount_cents,
            "variance_cents": self.variance_cents,
            "status": self.status,
            "previous_handover_id": self.previous_handover_id,
            "source_shift_id": self.source_shift_id,
            "occurred_on": to_iso_date(self.occurred_on),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "resolved_at": to_utc_z(self.resolved_at),
            "resolved_by_user_id": self.resolved_by_user_id,
            "bank_name": self.bank_name,
            "deposit_reference": self.deposit_reference,
            "deposit_receipt_url": self.deposit_receipt_url,
            "notes": self.notes,
            "dispute_notes": self.dispute_notes,
            "resolution_notes": self.resolution_notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
