# Overview: Custody chain ordering rules; decides whether a stage may be started.

"""
Sequencing rules for the cash custody chain.

shift_collection -> employee_to_manager -> manager_to_owner -> deposit_to_bank

A stage may only be created once a handover of the prior stage is
CONFIRMED or RESOLVED. The lookup always runs against the database inside
the caller's transaction; nothing is cached between requests.

Adding a stage means adding a HandoverStage member and a row in
SEQUENCE_RULES; the import-time check below refuses a partial table.
"""

from __future__ import annotations

from dataclasses import dataclass

from fuelcash.extensions import db
from fuelcash.models import CashHandover, HandoverStage
from fuelcash.models.handovers import SETTLED_HANDOVER_STATUSES
from fuelcash.services.concurrency import lock_for_update
from fuelcash.services.errors import SequenceViolation


@dataclass(frozen=True)
class SequenceRule:
    required_stage: HandoverStage | None
    # True: prior handover must come from the same party (same employee)
    # False: any settled prior handover at the station satisfies the rule
    same_from_party: bool = False


SEQUENCE_RULES: dict[HandoverStage, SequenceRule] = {
    HandoverStage.SHIFT_COLLECTION: SequenceRule(required_stage=None),
    HandoverStage.EMPLOYEE_TO_MANAGER: SequenceRule(
        required_stage=HandoverStage.SHIFT_COLLECTION,
        same_from_party=True,
    ),
    HandoverStage.MANAGER_TO_OWNER: SequenceRule(required_stage=HandoverStage.EMPLOYEE_TO_MANAGER),
    HandoverStage.DEPOSIT_TO_BANK: SequenceRule(required_stage=HandoverStage.MANAGER_TO_OWNER),
}

_missing = set(HandoverStage) - set(SEQUENCE_RULES)
if _missing:
    raise RuntimeError(f"Sequence rules missing for stages: {sorted(s.value for s in _missing)}")


@dataclass(frozen=True)
class SequenceCheck:
    stage: HandoverStage
    ok: bool
    required_stage: HandoverStage | None = None
    prior: CashHandover | None = None

    @property
    def message(self) -> str | None:
        if self.ok:
            return None
        scope = "employee" if SEQUENCE_RULES[self.stage].same_from_party else "station"
        return f"No confirmed {self.required_stage.value} handover found for this {scope}"


def coerce_stage(value) -> HandoverStage:
    """Accept a HandoverStage or its string value."""
    if isinstance(value, HandoverStage):
        return value
    try:
        return HandoverStage(value)
    except ValueError:
        valid = ", ".join(s.value for s in HandoverStage)
        raise ValueError(f"Invalid stage_type: {value!r} (expected one of: {valid})")


def find_prior_handover(
    stage_type: HandoverStage,
    from_user_id: int | None,
    station_id: int,
    *,
    lock: bool = False,
) -> CashHandover | None:
    """
    Most recent settled handover of the stage that must precede stage_type.

    Tie-break: latest occurred_on, then latest confirmed_at, then latest id.
    With lock=True the row is locked so concurrent creators serialize on it.
    """
    rule = SEQUENCE_RULES[coerce_stage(stage_type)]
    if rule.required_stage is None:
        return None

    query = db.session.query(CashHandover).filter(
        CashHandover.station_id == station_id,
        CashHandover.stage_type == rule.required_stage.value,
        CashHandover.status.in_(SETTLED_HANDOVER_STATUSES),
    )
    if rule.same_from_party:
        query = query.filter(CashHandover.from_user_id == from_user_id)

    query = query.order_by(
        CashHandover.occurred_on.desc(),
        CashHandover.confirmed_at.desc(),
        CashHandover.id.desc(),
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def is_allowed(
    stage_type,
    from_user_id: int | None,
    station_id: int,
    *,
    lock: bool = False,
) -> SequenceCheck:
    stage = coerce_stage(stage_type)
    rule = SEQUENCE_RULES[stage]
    if rule.required_stage is None:
        return SequenceCheck(stage=stage, ok=True)

    prior = find_prior_handover(stage, from_user_id, station_id, lock=lock)
    if prior is None:
        return SequenceCheck(stage=stage, ok=False, required_stage=rule.required_stage)
    return SequenceCheck(stage=stage, ok=True, required_stage=rule.required_stage, prior=prior)


def require_allowed(stage_type, from_user_id: int | None, station_id: int, *, lock: bool = False) -> CashHandover | None:
    """
    Raise SequenceViolation unless stage_type may be created.

    Returns the prior handover the new one should link to (None for the
    first stage).
    """
    check = is_allowed(stage_type, from_user_id, station_id, lock=lock)
    if not check.ok:
        raise SequenceViolation(check.message, required_stage=check.required_stage)
    return check.prior
