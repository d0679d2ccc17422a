"""
Tests for the cash handover lifecycle.

Amounts are in cents. Default tolerance: 100.00 absolute or 2%.
"""

from datetime import date

import pytest

from fuelcash.models import CashHandover, HandoverStage, StationConfig
from fuelcash.models.handovers import (
    HANDOVER_STATUS_CONFIRMED,
    HANDOVER_STATUS_DISPUTED,
    HANDOVER_STATUS_PENDING,
    HANDOVER_STATUS_RESOLVED,
)
from fuelcash.services import handover_service, station_service
from fuelcash.services.errors import (
    CashCustodyError,
    InvalidState,
    NotFound,
    NotRecipient,
    SequenceViolation,
    UnresolvedRecipient,
)
from fuelcash.services.station_service import StationError


def _confirmed(stage, station, from_user, confirmer, amount=500_000, **kwargs):
    handover = handover_service.create_handover(stage, station.id, from_user.id, amount, **kwargs)
    return handover_service.confirm_handover(handover.id, confirmer.id, accept_as_is=True)


@pytest.fixture
def full_chain(db_session, station, employee, manager, owner):
    """Shift -> manager -> owner, all confirmed."""
    shift = _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)
    e2m = _confirmed(HandoverStage.EMPLOYEE_TO_MANAGER, station, employee, manager)
    m2o = _confirmed(HandoverStage.MANAGER_TO_OWNER, station, manager, owner)
    return shift, e2m, m2o


class TestCreateHandover:
    def test_shift_collection_goes_to_station_manager(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(
            HandoverStage.SHIFT_COLLECTION,
            station.id,
            employee.id,
            500_000,
            source_shift_id=42,
            occurred_on=date(2025, 1, 10),
        )

        assert handover.status == HANDOVER_STATUS_PENDING
        assert handover.to_user_id == manager.id
        assert handover.previous_handover_id is None
        assert handover.source_shift_id == 42
        assert handover.actual_amount_cents is None
        assert handover.variance_cents is None

    def test_accepts_stage_as_string(self, db_session, station, employee):
        handover = handover_service.create_handover("shift_collection", station.id, employee.id, 1_000)
        assert handover.stage == HandoverStage.SHIFT_COLLECTION

    def test_employee_to_manager_without_confirmed_shift_fails(self, db_session, station, employee):
        with pytest.raises(SequenceViolation) as exc_info:
            handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 500_000)

        assert exc_info.value.required_stage == HandoverStage.SHIFT_COLLECTION
        assert db_session.query(CashHandover).count() == 0

    def test_employee_to_manager_links_and_routes_to_reporting_manager(self, db_session, station, employee, manager):
        shift = _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)

        e2m = handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 500_000)

        assert e2m.previous_handover_id == shift.id
        assert e2m.to_user_id == manager.id

    def test_employee_without_manager_falls_back_to_requester(self, db_session, station, manager, owner):
        from fuelcash.services import identity_service

        loner = identity_service.create_user("Lone Attendant", "employee", station_id=station.id)
        _confirmed(HandoverStage.SHIFT_COLLECTION, station, loner, manager)

        e2m = handover_service.create_handover(
            HandoverStage.EMPLOYEE_TO_MANAGER,
            station.id,
            loner.id,
            500_000,
            requested_by_user_id=owner.id,
        )
        assert e2m.to_user_id == owner.id

    def test_employee_without_manager_or_requester_is_unresolved(self, db_session, station, manager):
        from fuelcash.services import identity_service

        loner = identity_service.create_user("Lone Attendant", "employee", station_id=station.id)
        _confirmed(HandoverStage.SHIFT_COLLECTION, station, loner, manager)

        with pytest.raises(UnresolvedRecipient):
            handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, loner.id, 500_000)

    def test_station_without_manager_is_unresolved(self, db_session, other_station, employee):
        with pytest.raises(UnresolvedRecipient):
            handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, other_station.id, employee.id, 1_000)

    def test_manager_to_owner_routes_to_owner(self, db_session, station, employee, manager, owner):
        _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)
        e2m = _confirmed(HandoverStage.EMPLOYEE_TO_MANAGER, station, employee, manager)

        m2o = handover_service.create_handover(HandoverStage.MANAGER_TO_OWNER, station.id, manager.id, 500_000)

        assert m2o.to_user_id == owner.id
        assert m2o.previous_handover_id == e2m.id

    def test_unknown_station(self, db_session, employee):
        with pytest.raises(NotFound):
            handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, 9999, employee.id, 1_000)

    def test_negative_amount_rejected(self, db_session, station, employee):
        with pytest.raises(ValueError):
            handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, -1)

    def test_source_shift_only_for_shift_collection(self, db_session, station, employee, manager):
        _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)

        with pytest.raises(ValueError, match="source_shift_id"):
            handover_service.create_handover(
                HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 500_000, source_shift_id=1
            )


class TestScenarios:
    def test_scenario_1_exact_amount_confirms(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        handover = handover_service.confirm_handover(handover.id, manager.id, 500_000)

        assert handover.status == HANDOVER_STATUS_CONFIRMED
        assert handover.variance_cents == 0
        assert handover.confirmed_by_user_id == manager.id
        assert handover.confirmed_at is not None

    def test_scenario_2_to_4_dispute_resolve_and_continue(self, db_session, station, employee, manager, owner):
        shift = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        # Scenario 2: 150.00 short exceeds the 100.00 absolute tolerance
        shift = handover_service.confirm_handover(shift.id, manager.id, 485_000)
        assert shift.status == HANDOVER_STATUS_DISPUTED
        assert shift.variance_cents == -15_000
        assert shift.dispute_notes == "Discrepancy of 150.00 (3.00%)"

        # Scenario 3
        shift = handover_service.resolve_dispute(shift.id, owner.id, 490_000, "Recount with owner present")
        assert shift.status == HANDOVER_STATUS_RESOLVED
        assert shift.variance_cents == -10_000
        assert shift.actual_amount_cents == 490_000
        assert shift.resolved_by_user_id == owner.id
        assert shift.resolution_notes == "Recount with owner present"

        # Scenario 4: RESOLVED satisfies sequencing
        e2m = handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 490_000)
        assert e2m.previous_handover_id == shift.id
        assert e2m.status == HANDOVER_STATUS_PENDING


class TestConfirmHandover:
    def test_double_confirm_rejected(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)
        handover_service.confirm_handover(handover.id, manager.id, 500_000)

        with pytest.raises(InvalidState) as exc_info:
            handover_service.confirm_handover(handover.id, manager.id, 500_000)

        assert exc_info.value.current_status == HANDOVER_STATUS_CONFIRMED

    def test_confirming_disputed_rejected(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)
        handover_service.confirm_handover(handover.id, manager.id, 100_000)

        with pytest.raises(InvalidState):
            handover_service.confirm_handover(handover.id, manager.id, 500_000)

    def test_only_designated_recipient_can_confirm(self, db_session, station, employee, second_employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)
        assert handover.to_user_id == manager.id

        with pytest.raises(NotRecipient):
            handover_service.confirm_handover(handover.id, second_employee.id, accept_as_is=True)

        stored = db_session.get(CashHandover, handover.id)
        assert stored.status == HANDOVER_STATUS_PENDING
        assert stored.confirmed_by_user_id is None
        assert stored.actual_amount_cents is None

    def test_sender_cannot_confirm_own_handover(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        with pytest.raises(NotRecipient):
            handover_service.confirm_handover(handover.id, employee.id, 500_000)

    def test_accept_as_is_uses_expected_amount(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 123_456)

        handover = handover_service.confirm_handover(handover.id, manager.id, accept_as_is=True, notes="Counted twice")

        assert handover.actual_amount_cents == 123_456
        assert handover.variance_cents == 0
        assert handover.notes == "Counted twice"

    def test_accept_as_is_conflicting_amount_rejected(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        with pytest.raises(ValueError):
            handover_service.confirm_handover(handover.id, manager.id, 499_000, accept_as_is=True)

    def test_missing_amount_rejected(self, db_session, station, employee, manager):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        with pytest.raises(ValueError):
            handover_service.confirm_handover(handover.id, manager.id)

        assert handover_service.get_handover(handover.id).status == HANDOVER_STATUS_PENDING

    def test_unknown_handover(self, db_session, manager):
        with pytest.raises(NotFound):
            handover_service.confirm_handover(9999, manager.id, 100)

    def test_station_threshold_override(self, db_session, station, employee, manager):
        station_service.set_station_config(station.id, "handover.variance_abs_threshold_cents", "20000")
        station_service.set_station_config(station.id, "handover.variance_pct_threshold_bps", "500")
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        handover = handover_service.confirm_handover(handover.id, manager.id, 485_000)

        assert handover.status == HANDOVER_STATUS_CONFIRMED
        assert handover.variance_cents == -15_000

    def test_non_integer_threshold_rejected_on_write(self, db_session, station):
        with pytest.raises(StationError, match="must be an integer"):
            station_service.set_station_config(station.id, "handover.variance_pct_threshold_bps", "two percent")

        assert station_service.get_station_config(station.id, "handover.variance_pct_threshold_bps") is None

    def test_negative_threshold_rejected_on_write(self, db_session, station):
        with pytest.raises(StationError, match="negative"):
            station_service.set_station_config(station.id, "handover.variance_abs_threshold_cents", "-1")

    def test_corrupt_stored_threshold_is_a_business_error(self, db_session, station, employee, manager):
        db_session.add(StationConfig(station_id=station.id, key="handover.variance_abs_threshold_cents", value="lots"))
        db_session.commit()
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        with pytest.raises(CashCustodyError) as exc_info:
            handover_service.confirm_handover(handover.id, manager.id, 485_000)

        assert isinstance(exc_info.value, StationError)
        assert handover_service.get_handover(handover.id).status == HANDOVER_STATUS_PENDING


class TestResolveDispute:
    def test_resolve_twice_rejected(self, db_session, station, employee, manager, owner):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)
        handover_service.confirm_handover(handover.id, manager.id, 485_000)
        handover_service.resolve_dispute(handover.id, owner.id, 490_000)

        with pytest.raises(InvalidState) as exc_info:
            handover_service.resolve_dispute(handover.id, owner.id, 490_000)

        assert exc_info.value.current_status == HANDOVER_STATUS_RESOLVED

    def test_resolve_pending_rejected(self, db_session, station, employee, owner):
        handover = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)

        with pytest.raises(InvalidState):
            handover_service.resolve_dispute(handover.id, owner.id, 500_000)


class TestPreviousHandoverLink:
    def test_link_is_immutable(self, db_session, station, employee, manager):
        _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)
        e2m = handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 500_000)
        assert e2m.previous_handover_id is not None

        with pytest.raises(ValueError, match="immutable"):
            e2m.previous_handover_id = e2m.previous_handover_id + 1

    def test_link_is_immutable_on_expired_instance(self, db_session, station, employee, manager):
        _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)
        e2m = handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 500_000)
        db_session.expire(e2m)

        with pytest.raises(ValueError, match="immutable"):
            e2m.previous_handover_id = 999

    def test_link_survives_overwrite_after_reload(self, db_session, station, employee, manager):
        shift = _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)
        e2m = handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 500_000)
        shift_id, e2m_id = shift.id, e2m.id

        db_session.expunge_all()
        reloaded = db_session.get(CashHandover, e2m_id)
        db_session.expire(reloaded)

        with pytest.raises(ValueError, match="immutable"):
            reloaded.previous_handover_id = 999
        db_session.commit()

        db_session.expunge_all()
        assert db_session.get(CashHandover, e2m_id).previous_handover_id == shift_id

    def test_deleting_predecessor_does_not_cascade(self, db_session, station, employee, manager):
        shift = _confirmed(HandoverStage.SHIFT_COLLECTION, station, employee, manager)
        e2m = _confirmed(HandoverStage.EMPLOYEE_TO_MANAGER, station, employee, manager)
        shift_id, e2m_id = shift.id, e2m.id

        db_session.delete(shift)
        db_session.commit()

        survivor = handover_service.get_handover(e2m_id)
        assert survivor is not None
        assert survivor.previous_handover_id == shift_id


class TestBankDeposit:
    def test_requires_confirmed_manager_to_owner(self, db_session, station, owner):
        with pytest.raises(SequenceViolation) as exc_info:
            handover_service.record_bank_deposit(station.id, owner.id, 1_500_000)

        assert exc_info.value.required_stage == HandoverStage.MANAGER_TO_OWNER

    def test_self_confirmed(self, db_session, station, owner, full_chain):
        _, _, m2o = full_chain

        deposit = handover_service.record_bank_deposit(
            station.id,
            owner.id,
            500_000,
            bank_name="State Bank",
            deposit_reference="SLIP-0042",
            occurred_on=date(2025, 1, 11),
        )

        assert deposit.stage == HandoverStage.DEPOSIT_TO_BANK
        assert deposit.status == HANDOVER_STATUS_CONFIRMED
        assert deposit.to_user_id is None
        assert deposit.confirmed_by_user_id == owner.id
        assert deposit.previous_handover_id == m2o.id
        assert deposit.deposit_reference == "SLIP-0042"

        deposits, total = handover_service.get_bank_deposits(station.id, date(2025, 1, 1), date(2025, 1, 31))
        assert [d.id for d in deposits] == [deposit.id]
        assert total == 500_000


class TestQueries:
    def test_pending_for_user(self, db_session, station, employee, second_employee, manager, owner):
        a = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 1_000)
        b = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, second_employee.id, 2_000)

        pending = handover_service.get_pending_for_user(manager.id)
        assert {h.id for h in pending} == {a.id, b.id}
        assert handover_service.get_pending_for_user(owner.id) == []

    def test_list_station_handovers_filters_and_pages(self, db_session, station, employee, manager):
        for amount in (1_000, 2_000, 3_000):
            handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, amount)
        first = handover_service.get_pending_for_user(manager.id)[-1]
        handover_service.confirm_handover(first.id, manager.id, accept_as_is=True)

        rows, total = handover_service.list_station_handovers(station.id, status="pending", per_page=1)
        assert total == 2
        assert len(rows) == 1

        rows, total = handover_service.list_station_handovers(station.id, stage_type="shift_collection")
        assert total == 3

    def test_cash_flow_summary(self, db_session, station, employee, manager, owner, full_chain):
        handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 9_000)
        disputed = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 500_000)
        handover_service.confirm_handover(disputed.id, manager.id, 1_000)

        today = full_chain[0].occurred_on
        summary = handover_service.get_cash_flow_summary(station.id, today, today)

        assert summary["by_stage"]["shift_collection"] == {
            "total_amount_cents": 500_000,
            "total_variance_cents": 0,
            "count": 1,
        }
        assert summary["by_stage"]["deposit_to_bank"]["count"] == 0
        assert summary["pending_count"] == 1
        assert summary["disputed_count"] == 1

    def test_unconfirmed_in_window(self, db_session, station, employee):
        handover_service.create_handover(
            HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 1_000, occurred_on=date(2025, 1, 9)
        )
        inside = handover_service.create_handover(
            HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 1_000, occurred_on=date(2025, 1, 10)
        )

        rows = handover_service.get_unconfirmed(station.id, date(2025, 1, 10), date(2025, 1, 10))
        assert [h.id for h in rows] == [inside.id]


class TestChainIntegrity:
    def test_intact_chain(self, db_session, station, full_chain):
        assert handover_service.verify_chain_integrity(station.id) == []

    def test_deleted_predecessor_is_reported(self, db_session, station, full_chain):
        shift, e2m, _ = full_chain
        shift_id, e2m_id = shift.id, e2m.id
        db_session.delete(shift)
        db_session.commit()

        issues = handover_service.verify_chain_integrity(station.id)

        assert len(issues) == 1
        assert issues[0].handover_id == e2m_id
        assert issues[0].previous_handover_id == shift_id
        assert issues[0].problem == "previous handover no longer exists"
