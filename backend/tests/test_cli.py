"""
Tests for the `flask cash` command group.
"""

from fuelcash.models import HandoverStage, Station, User
from fuelcash.services import handover_service


def _run(app, *args):
    return app.test_cli_runner().invoke(args=['cash', *args])


class TestBootstrap:
    def test_init_db(self, app, db_session):
        result = _run(app, 'init-db')

        assert result.exit_code == 0
        assert 'PASS' in result.output

    def test_create_user_and_station(self, app, db_session):
        owner = _run(app, 'create-user', '--name', 'Olivia', '--role', 'owner')
        assert owner.exit_code == 0
        owner_id = db_session.query(User).filter_by(name='Olivia').one().id

        result = _run(app, 'create-station', '--name', 'Highway 9', '--code', 'HW9', '--owner-id', str(owner_id))

        assert result.exit_code == 0
        assert 'Created station' in result.output
        station = db_session.query(Station).filter_by(code='HW9').one()
        assert station.owner_user_id == owner_id
        assert station.manager_user_id is None

    def test_create_user_rejects_unknown_role(self, app, db_session):
        result = _run(app, 'create-user', '--name', 'Nobody', '--role', 'janitor')
        assert result.exit_code != 0

    def test_set_threshold(self, app, db_session, station):
        result = _run(
            app, 'set-threshold',
            '--station-id', str(station.id),
            '--context', 'handover',
            '--abs-cents', '5000',
            '--pct-bps', '150',
        )

        assert result.exit_code == 0
        assert '50.00 or 1.5%' in result.output

    def test_set_threshold_requires_a_value(self, app, db_session, station):
        result = _run(app, 'set-threshold', '--station-id', str(station.id), '--context', 'settlement')
        assert result.exit_code == 1


class TestInspection:
    def test_handovers_listing(self, app, db_session, station, employee):
        handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 123_456)

        result = _run(app, 'handovers', '--station-id', str(station.id))

        assert result.exit_code == 0
        assert '1,234.56' in result.output
        assert 'Showing 1 of 1' in result.output

    def test_empty_settlements(self, app, db_session, station):
        result = _run(app, 'settlements', '--station-id', str(station.id))

        assert result.exit_code == 0
        assert 'No settlements found.' in result.output

    def test_verify_chain_reports_dangling_link(self, app, db_session, station, employee, manager):
        shift = handover_service.create_handover(HandoverStage.SHIFT_COLLECTION, station.id, employee.id, 1_000)
        handover_service.confirm_handover(shift.id, manager.id, accept_as_is=True)
        e2m = handover_service.create_handover(HandoverStage.EMPLOYEE_TO_MANAGER, station.id, employee.id, 1_000)
        handover_service.confirm_handover(e2m.id, manager.id, accept_as_is=True)

        clean = _run(app, 'verify-chain', '--station-id', str(station.id))
        assert clean.exit_code == 0
        assert 'PASS' in clean.output

        db_session.delete(shift)
        db_session.commit()

        broken = _run(app, 'verify-chain', '--station-id', str(station.id))
        assert broken.exit_code == 1
        assert 'previous handover no longer exists' in broken.output
