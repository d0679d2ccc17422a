"""
Cash Handover Service

WHY: Cash collected at the pumps must be traceable until it reaches the
bank. Every custody transfer (employee -> manager -> owner -> bank) is a
handover record that the receiving party confirms or disputes.

DESIGN PRINCIPLES:
- This module is the only writer of cash_handovers
- Stages are created in chain order (see sequence_service)
- Variance is always computed here, never accepted from callers
- Status moves PENDING -> CONFIRMED | DISPUTED, DISPUTED -> RESOLVED; nothing else
- Each create/confirm/resolve is a single read-then-write transaction
- One audit event per transition, emitted after commit
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import CashHandover, HandoverStage
from ..models.handovers import (
    HANDOVER_STATUS_PENDING,
    HANDOVER_STATUS_CONFIRMED,
    HANDOVER_STATUS_DISPUTED,
    HANDOVER_STATUS_RESOLVED,
    SETTLED_HANDOVER_STATUSES,
)
from fuelcash.time_utils import utcnow, today
from .audit_service import (
    AuditEvent,
    record_event,
    EVENT_HANDOVER_CREATED,
    EVENT_HANDOVER_CONFIRMED,
    EVENT_HANDOVER_DISPUTED,
    EVENT_HANDOVER_RESOLVED,
)
from .concurrency import atomic, lock_for_update
from .errors import InvalidState, NotFound, NotRecipient, UnresolvedRecipient
from .identity_service import get_manager_of, get_owner, get_station_manager
from .sequence_service import SEQUENCE_RULES, coerce_stage, require_allowed
from .station_service import get_variance_thresholds, require_station
from .variance_service import CONTEXT_HANDOVER, classify, format_cents


ENTITY_TYPE = "cash_handover"


# =============================================================================
# RECIPIENT RESOLUTION
# =============================================================================

def _station_manager(station_id: int, from_user_id: int | None, requested_by_user_id: int | None) -> int | None:
    manager_id = get_station_manager(station_id)
    if manager_id is None:
        raise UnresolvedRecipient(f"Station {station_id} has no assigned manager")
    return manager_id


def _employees_manager(station_id: int, from_user_id: int | None, requested_by_user_id: int | None) -> int | None:
    manager_id = get_manager_of(from_user_id) or requested_by_user_id
    if manager_id is None:
        raise UnresolvedRecipient(f"User {from_user_id} has no manager and no requesting manager was given")
    return manager_id


def _station_owner(station_id: int, from_user_id: int | None, requested_by_user_id: int | None) -> int | None:
    owner_id = get_owner(station_id)
    if owner_id is None:
        raise UnresolvedRecipient(f"Station {station_id} has no owner")
    return owner_id


def _no_recipient(station_id: int, from_user_id: int | None, requested_by_user_id: int | None) -> int | None:
    # Bank deposits are confirmed by the depositor
    return None


RECIPIENT_RESOLVERS = {
    HandoverStage.SHIFT_COLLECTION: _station_manager,
    HandoverStage.EMPLOYEE_TO_MANAGER: _employees_manager,
    HandoverStage.MANAGER_TO_OWNER: _station_owner,
    HandoverStage.DEPOSIT_TO_BANK: _no_recipient,
}


def resolve_recipient(
    stage_type,
    station_id: int,
    from_user_id: int | None,
    requested_by_user_id: int | None = None,
) -> int | None:
    """Receiving party for a new handover, derived from stage and station."""
    stage = coerce_stage(stage_type)
    return RECIPIENT_RESOLVERS[stage](station_id, from_user_id, requested_by_user_id)


# =============================================================================
# STATE TRANSITIONS
# =============================================================================

def _require_amount(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} must be an integer amount in cents")
    if value < 0:
        raise ValueError(f"{field} cannot be negative")
    return value


def _build_handover(
    stage: HandoverStage,
    station_id: int,
    from_user_id: int,
    expected_amount_cents: int,
    *,
    requested_by_user_id: int | None,
    source_shift_id: int | None,
    occurred_on: date | None,
    notes: str | None,
) -> CashHandover:
    """Validate, sequence and stage a new PENDING handover (no commit)."""
    require_station(station_id)

    if from_user_id is None:
        raise ValueError("from_user_id is required")
    if source_shift_id is not None and stage != HandoverStage.SHIFT_COLLECTION:
        raise ValueError("source_shift_id is only valid for shift_collection handovers")

    # Locks the prior-stage row so concurrent creators for the same chain serialize
    prior = require_allowed(stage, from_user_id, station_id, lock=True)
    to_user_id = resolve_recipient(stage, station_id, from_user_id, requested_by_user_id)

    handover = CashHandover(
        station_id=station_id,
        stage_type=stage.value,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        expected_amount_cents=expected_amount_cents,
        status=HANDOVER_STATUS_PENDING,
        previous_handover_id=prior.id if prior else None,
        source_shift_id=source_shift_id,
        occurred_on=occurred_on or today(),
        notes=notes,
    )
    db.session.add(handover)
    db.session.flush()
    return handover


def _created_event(handover: CashHandover, actor_user_id: int | None) -> AuditEvent:
    return AuditEvent(
        event_type=EVENT_HANDOVER_CREATED,
        entity_type=ENTITY_TYPE,
        entity_id=handover.id,
        station_id=handover.station_id,
        actor_user_id=actor_user_id,
        amount_before_cents=None,
        amount_after_cents=handover.expected_amount_cents,
        note=f"{handover.stage_type} created",
    )


@atomic
def create_handover(
    stage_type,
    station_id: int,
    from_user_id: int,
    expected_amount_cents: int,
    *,
    requested_by_user_id: int | None = None,
    source_shift_id: int | None = None,
    occurred_on: date | None = None,
    notes: str | None = None,
) -> CashHandover:
    """
    Create a PENDING handover at the given custody stage.

    Args:
        stage_type: HandoverStage or its string value
        station_id: Station whose cash is moving
        from_user_id: Party handing the cash over
        expected_amount_cents: Amount the receiver should get
        requested_by_user_id: Caller; fallback recipient for employee_to_manager
        source_shift_id: Originating shift (shift_collection only)
        occurred_on: Business date (defaults to today)

    Raises:
        SequenceViolation: Prior stage has no confirmed/resolved handover
        UnresolvedRecipient: Station or employee has no one to receive the cash
        NotFound: Station does not exist
    """
    stage = coerce_stage(stage_type)
    _require_amount(expected_amount_cents, "expected_amount_cents")

    handover = _build_handover(
        stage,
        station_id,
        from_user_id,
        expected_amount_cents,
        requested_by_user_id=requested_by_user_id,
        source_shift_id=source_shift_id,
        occurred_on=occurred_on,
        notes=notes,
    )
    db.session.commit()

    record_event(_created_event(handover, requested_by_user_id or from_user_id))
    return handover


def _lock_handover(handover_id: int) -> CashHandover:
    handover = lock_for_update(db.session.query(CashHandover).filter_by(id=handover_id)).first()
    if not handover:
        raise NotFound(f"Handover {handover_id} not found")
    return handover


def _apply_confirmation(handover: CashHandover, actual_amount_cents: int, confirming_user_id: int | None) -> bool:
    """Set amounts/status on a locked PENDING handover. Returns True if disputed."""
    thresholds = get_variance_thresholds(handover.station_id, CONTEXT_HANDOVER)
    result = classify(handover.expected_amount_cents, actual_amount_cents, thresholds)

    handover.actual_amount_cents = actual_amount_cents
    handover.variance_cents = result.variance_cents
    handover.confirmed_at = utcnow()
    handover.confirmed_by_user_id = confirming_user_id

    if result.is_dispute:
        handover.status = HANDOVER_STATUS_DISPUTED
        handover.dispute_notes = (
            f"Discrepancy of {format_cents(result.abs_variance_cents)} ({result.percentage}%)"
        )
    else:
        handover.status = HANDOVER_STATUS_CONFIRMED
    return result.is_dispute


@atomic
def confirm_handover(
    handover_id: int,
    confirming_user_id: int,
    actual_amount_cents: int | None = None,
    *,
    accept_as_is: bool = False,
    notes: str | None = None,
) -> CashHandover:
    """
    Receiving party confirms a PENDING handover.

    Variance beyond tolerance moves the handover to DISPUTED instead of
    CONFIRMED. accept_as_is confirms at the expected amount.

    Raises:
        NotFound: Handover does not exist
        InvalidState: Handover is not PENDING (double confirm is rejected)
        NotRecipient: Confirming user is not the designated recipient
    """
    handover = _lock_handover(handover_id)

    if handover.status != HANDOVER_STATUS_PENDING:
        raise InvalidState(
            f"Handover {handover_id} is {handover.status}, only PENDING handovers can be confirmed",
            current_status=handover.status,
        )

    if handover.to_user_id is not None and confirming_user_id != handover.to_user_id:
        raise NotRecipient(f"Only the designated recipient can confirm handover {handover_id}")

    if accept_as_is:
        if actual_amount_cents is not None and actual_amount_cents != handover.expected_amount_cents:
            raise ValueError("actual_amount_cents conflicts with accept_as_is")
        actual_amount_cents = handover.expected_amount_cents
    elif actual_amount_cents is None:
        raise ValueError("actual_amount_cents is required unless accept_as_is is set")
    _require_amount(actual_amount_cents, "actual_amount_cents")

    disputed = _apply_confirmation(handover, actual_amount_cents, confirming_user_id)
    if notes:
        handover.notes = notes

    db.session.commit()

    record_event(AuditEvent(
        event_type=EVENT_HANDOVER_DISPUTED if disputed else EVENT_HANDOVER_CONFIRMED,
        entity_type=ENTITY_TYPE,
        entity_id=handover.id,
        station_id=handover.station_id,
        actor_user_id=confirming_user_id,
        amount_before_cents=handover.expected_amount_cents,
        amount_after_cents=handover.actual_amount_cents,
        note=handover.dispute_notes if disputed else None,
    ))
    return handover


@atomic
def resolve_dispute(
    handover_id: int,
    resolving_user_id: int,
    final_amount_cents: int,
    note: str | None = None,
) -> CashHandover:
    """
    Settle a DISPUTED handover at a final amount.

    RESOLVED is terminal and satisfies sequencing exactly like CONFIRMED.
    Resolving twice is rejected, not treated as a no-op.
    """
    _require_amount(final_amount_cents, "final_amount_cents")
    handover = _lock_handover(handover_id)

    if handover.status != HANDOVER_STATUS_DISPUTED:
        raise InvalidState(
            f"Handover {handover_id} is {handover.status}, only DISPUTED handovers can be resolved",
            current_status=handover.status,
        )

    amount_before = handover.actual_amount_cents
    handover.actual_amount_cents = final_amount_cents
    handover.variance_cents = final_amount_cents - handover.expected_amount_cents
    handover.status = HANDOVER_STATUS_RESOLVED
    handover.resolution_notes = note
    handover.resolved_at = utcnow()
    handover.resolved_by_user_id = resolving_user_id

    db.session.commit()

    record_event(AuditEvent(
        event_type=EVENT_HANDOVER_RESOLVED,
        entity_type=ENTITY_TYPE,
        entity_id=handover.id,
        station_id=handover.station_id,
        actor_user_id=resolving_user_id,
        amount_before_cents=amount_before,
        amount_after_cents=final_amount_cents,
        note=note,
    ))
    return handover


@atomic
def record_bank_deposit(
    station_id: int,
    depositor_user_id: int,
    amount_cents: int,
    *,
    bank_name: str | None = None,
    deposit_reference: str | None = None,
    deposit_receipt_url: str | None = None,
    occurred_on: date | None = None,
    notes: str | None = None,
) -> CashHandover:
    """
    Record a bank deposit in one step: created and self-confirmed by the depositor.

    Still requires a confirmed manager_to_owner handover at the station.
    """
    _require_amount(amount_cents, "amount_cents")

    handover = _build_handover(
        HandoverStage.DEPOSIT_TO_BANK,
        station_id,
        depositor_user_id,
        amount_cents,
        requested_by_user_id=depositor_user_id,
        source_shift_id=None,
        occurred_on=occurred_on,
        notes=notes,
    )
    handover.bank_name = bank_name
    handover.deposit_reference = deposit_reference
    handover.deposit_receipt_url = deposit_receipt_url
    _apply_confirmation(handover, amount_cents, depositor_user_id)

    db.session.commit()

    record_event(_created_event(handover, depositor_user_id))
    record_event(AuditEvent(
        event_type=EVENT_HANDOVER_CONFIRMED,
        entity_type=ENTITY_TYPE,
        entity_id=handover.id,
        station_id=handover.station_id,
        actor_user_id=depositor_user_id,
        amount_before_cents=handover.expected_amount_cents,
        amount_after_cents=handover.actual_amount_cents,
        note=f"Bank deposit {deposit_reference}" if deposit_reference else "Bank deposit",
    ))
    return handover


# =============================================================================
# QUERIES
# =============================================================================

def get_handover(handover_id: int) -> CashHandover | None:
    return db.session.get(CashHandover, handover_id)


def require_handover(handover_id: int) -> CashHandover:
    handover = get_handover(handover_id)
    if not handover:
        raise NotFound(f"Handover {handover_id} not found")
    return handover


def get_pending_for_user(user_id: int, station_id: int | None = None) -> list[CashHandover]:
    """Handovers waiting for this user to confirm."""
    query = db.session.query(CashHandover).filter_by(
        to_user_id=user_id,
        status=HANDOVER_STATUS_PENDING,
    )
    if station_id is not None:
        query = query.filter_by(station_id=station_id)
    return query.order_by(CashHandover.occurred_on.desc(), CashHandover.id.desc()).all()


def _date_range(query, start: date | None, end: date | None):
    if start is not None:
        query = query.filter(CashHandover.occurred_on >= start)
    if end is not None:
        query = query.filter(CashHandover.occurred_on <= end)
    return query


def list_station_handovers(
    station_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
    stage_type=None,
    status: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[CashHandover], int]:
    """Paged station handovers, newest first. Returns (rows, total)."""
    query = _date_range(db.session.query(CashHandover).filter_by(station_id=station_id), start, end)
    if stage_type is not None:
        query = query.filter_by(stage_type=coerce_stage(stage_type).value)
    if status is not None:
        query = query.filter_by(status=status.upper())

    total = query.count()
    rows = (
        query.order_by(CashHandover.occurred_on.desc(), CashHandover.id.desc())
        .offset(max(page - 1, 0) * per_page)
        .limit(per_page)
        .all()
    )
    return rows, total


def get_unconfirmed(station_id: int, start: date, end: date) -> list[CashHandover]:
    """PENDING handovers in a date window, oldest first (manager alert)."""
    query = _date_range(
        db.session.query(CashHandover).filter_by(station_id=station_id, status=HANDOVER_STATUS_PENDING),
        start,
        end,
    )
    return query.order_by(CashHandover.occurred_on.asc(), CashHandover.id.asc()).all()


def get_cash_flow_summary(station_id: int, start: date, end: date) -> dict:
    """
    Totals per stage over settled handovers, plus open pending/disputed counts.
    """
    base = _date_range(db.session.query(CashHandover).filter(CashHandover.station_id == station_id), start, end)

    rows = (
        base.filter(CashHandover.status.in_(SETTLED_HANDOVER_STATUSES))
        .with_entities(
            CashHandover.stage_type,
            func.coalesce(func.sum(CashHandover.actual_amount_cents), 0),
            func.coalesce(func.sum(CashHandover.variance_cents), 0),
            func.count(CashHandover.id),
        )
        .group_by(CashHandover.stage_type)
        .all()
    )
    by_stage = {
        stage_type: {
            "total_amount_cents": int(total),
            "total_variance_cents": int(variance),
            "count": int(count),
        }
        for stage_type, total, variance, count in rows
    }

    return {
        "station_id": station_id,
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "by_stage": {
            stage.value: by_stage.get(stage.value, {"total_amount_cents": 0, "total_variance_cents": 0, "count": 0})
            for stage in HandoverStage
        },
        "pending_count": base.filter(CashHandover.status == HANDOVER_STATUS_PENDING).count(),
        "disputed_count": base.filter(CashHandover.status == HANDOVER_STATUS_DISPUTED).count(),
    }


def get_bank_deposits(station_id: int, start: date, end: date) -> tuple[list[CashHandover], int]:
    """Bank deposits in the window and the total actually deposited."""
    deposits = _date_range(
        db.session.query(CashHandover).filter_by(
            station_id=station_id,
            stage_type=HandoverStage.DEPOSIT_TO_BANK.value,
        ),
        start,
        end,
    ).order_by(CashHandover.occurred_on.desc(), CashHandover.id.desc()).all()

    total = sum(d.actual_amount_cents or 0 for d in deposits if d.status in SETTLED_HANDOVER_STATUSES)
    return deposits, total


# =============================================================================
# CHAIN INTEGRITY
# =============================================================================

@dataclass(frozen=True)
class ChainIssue:
    handover_id: int
    previous_handover_id: int | None
    problem: str

    def to_dict(self) -> dict:
        return {
            "handover_id": self.handover_id,
            "previous_handover_id": self.previous_handover_id,
            "problem": self.problem,
        }


def verify_chain_integrity(station_id: int) -> list[ChainIssue]:
    """
    Check every settled non-first-stage handover links to a valid predecessor.

    A valid predecessor exists, is at the same station, has the required
    prior stage and is CONFIRMED or RESOLVED. Links left dangling by a
    deleted handover are reported, not repaired.
    """
    handovers = db.session.query(CashHandover).filter(
        CashHandover.station_id == station_id,
        CashHandover.status.in_(SETTLED_HANDOVER_STATUSES),
        CashHandover.stage_type != HandoverStage.SHIFT_COLLECTION.value,
    ).order_by(CashHandover.id.asc()).all()

    issues: list[ChainIssue] = []
    for handover in handovers:
        required = SEQUENCE_RULES[handover.stage].required_stage
        prev_id = handover.previous_handover_id
        if prev_id is None:
            issues.append(ChainIssue(handover.id, None, "missing previous handover link"))
            continue

        prev = db.session.get(CashHandover, prev_id)
        if prev is None:
            issues.append(ChainIssue(handover.id, prev_id, "previous handover no longer exists"))
        elif prev.station_id != handover.station_id:
            issues.append(ChainIssue(handover.id, prev_id, "previous handover belongs to another station"))
        elif prev.stage_type != required.value:
            issues.append(ChainIssue(handover.id, prev_id, f"previous handover is {prev.stage_type}, expected {required.value}"))
        elif not prev.is_settled:
            issues.append(ChainIssue(handover.id, prev_id, f"previous handover is {prev.status}"))
    return issues
