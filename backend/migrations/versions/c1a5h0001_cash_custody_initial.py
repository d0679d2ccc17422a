"""Cash custody initial schema: stations, users, readings, handovers, settlements, audit

Revision ID: c1a5h0001
Revises:
Create Date: 2025-01-06 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c1a5h0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # users.station_id <-> stations.manager/owner form a cycle; the
    # users -> stations FK is added after both tables exist
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="employee"),
        sa.Column("station_id", sa.Integer(), nullable=True),
        sa.Column("manager_user_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["manager_user_id"], ["users.id"]),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_station_id", "users", ["station_id"], unique=False)
    op.create_index("ix_users_manager_user_id", "users", ["manager_user_id"], unique=False)

    op.create_table(
        "stations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("manager_user_id", sa.Integer(), nullable=True),
        sa.Column("owner_user_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["manager_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"]),
        sa.UniqueConstraint("code", name="uq_stations_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stations_code", "stations", ["code"], unique=False)
    op.create_index("ix_stations_manager_user_id", "stations", ["manager_user_id"], unique=False)
    op.create_index("ix_stations_owner_user_id", "stations", ["owner_user_id"], unique=False)
    op.create_index("ix_stations_is_active", "stations", ["is_active"], unique=False)

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_foreign_key("fk_users_station", "stations", ["station_id"], ["id"])

    op.create_table(
        "station_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"]),
        sa.UniqueConstraint("station_id", "key", name="uq_station_configs_station_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_station_configs_station_id", "station_configs", ["station_id"], unique=False)

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("settlement_date", sa.Date(), nullable=False),
        sa.Column("expected_cash_cents", sa.Integer(), nullable=False),
        sa.Column("actual_cash_cents", sa.Integer(), nullable=False),
        sa.Column("variance_cents", sa.Integer(), nullable=False),
        sa.Column("online_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credit_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="RECORDED"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by_user_id", sa.Integer(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"]),
        sa.ForeignKeyConstraint(["recorded_by_user_id"], ["users.id"]),
        sa.UniqueConstraint("station_id", "settlement_date", name="uq_settlements_station_date"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_settlements_station_id", "settlements", ["station_id"], unique=False)
    op.create_index("ix_settlements_settlement_date", "settlements", ["settlement_date"], unique=False)
    op.create_index("ix_settlements_status", "settlements", ["status"], unique=False)

    op.create_table(
        "nozzle_readings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("reading_date", sa.Date(), nullable=False),
        sa.Column("nozzle_number", sa.Integer(), nullable=True),
        sa.Column("entered_by_user_id", sa.Integer(), nullable=True),
        sa.Column("litres_sold_ml", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cash_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("online_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credit_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("settlement_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"]),
        sa.ForeignKeyConstraint(["entered_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["settlement_id"], ["settlements.id"], ondelete="SET NULL"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_nozzle_readings_station_id", "nozzle_readings", ["station_id"], unique=False)
    op.create_index("ix_nozzle_readings_reading_date", "nozzle_readings", ["reading_date"], unique=False)
    op.create_index("ix_nozzle_readings_settlement_id", "nozzle_readings", ["settlement_id"], unique=False)
    op.create_index("ix_nozzle_readings_station_date", "nozzle_readings", ["station_id", "reading_date"], unique=False)

    op.create_table(
        "cash_handovers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("stage_type", sa.String(length=32), nullable=False),
        sa.Column("from_user_id", sa.Integer(), nullable=True),
        sa.Column("to_user_id", sa.Integer(), nullable=True),
        sa.Column("expected_amount_cents", sa.Integer(), nullable=False),
        sa.Column("actual_amount_cents", sa.Integer(), nullable=True),
        sa.Column("variance_cents", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        # Lookup-only chain link: deliberately no foreign key
        sa.Column("previous_handover_id", sa.Integer(), nullable=True),
        sa.Column("source_shift_id", sa.Integer(), nullable=True),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("bank_name", sa.String(length=100), nullable=True),
        sa.Column("deposit_reference", sa.String(length=50), nullable=True),
        sa.Column("deposit_receipt_url", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("dispute_notes", sa.Text(), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"]),
        sa.ForeignKeyConstraint(["from_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["to_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["confirmed_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["resolved_by_user_id"], ["users.id"]),
        sqlite_autoincrement=True,
    )
    for column in ("station_id", "stage_type", "from_user_id", "to_user_id", "status",
                   "previous_handover_id", "source_shift_id", "occurred_on", "created_at"):
        op.create_index(f"ix_cash_handovers_{column}", "cash_handovers", [column], unique=False)
    op.create_index("ix_cash_handovers_station_date", "cash_handovers", ["station_id", "occurred_on"], unique=False)
    op.create_index(
        "ix_cash_handovers_chain_lookup",
        "cash_handovers",
        ["station_id", "stage_type", "from_user_id", "status"],
        unique=False,
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("amount_before_cents", sa.Integer(), nullable=True),
        sa.Column("amount_after_cents", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"], unique=False)
    op.create_index("ix_audit_events_station_id", "audit_events", ["station_id"], unique=False)
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"], unique=False)
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"], unique=False)
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"], unique=False)
    op.create_index("ix_audit_events_station_occurred", "audit_events", ["station_id", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("audit_events")
    op.drop_table("cash_handovers")
    op.drop_table("nozzle_readings")
    op.drop_table("settlements")
    op.drop_table("station_configs")
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.drop_constraint("fk_users_station", type_="foreignkey")
    op.drop_table("stations")
    op.drop_table("users")
