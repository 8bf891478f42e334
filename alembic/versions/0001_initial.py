"""Initial schema: tenants, tickets, tracking, queues and kanban.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


JSON = sa.JSON().with_variant(JSONB(), "postgresql")

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True)


def _company_fk() -> sa.Column:
    return sa.Column(
        "company_id",
        sa.Uuid(),
        sa.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def upgrade() -> None:
    op.create_table(
        "companies",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        _ts("created_at"),
    )

    op.create_table(
        "channels",
        _id(),
        _company_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("completion_message", sa.Text(), nullable=True),
        sa.Column("rating_message", sa.Text(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("idx_channels_company", "channels", ["company_id"])

    op.create_table(
        "users",
        _id(),
        _company_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("profile", _enum("user_profile", "admin", "user"), nullable=False),
        sa.Column("channel_id", sa.Uuid(), sa.ForeignKey("channels.id", ondelete="SET NULL"), nullable=True),
        sa.Column("number", sa.String(50), nullable=True),
        sa.Column("notify_new_ticket", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("token_version", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("company_id", "email", name="uq_users_company_email"),
    )
    op.create_index("idx_users_company_profile", "users", ["company_id", "profile"])

    op.create_table(
        "settings",
        _id(),
        _company_fk(),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        _ts("updated_at"),
        sa.UniqueConstraint("company_id", "key", name="uq_settings_company_key"),
    )

    op.create_table(
        "contacts",
        _id(),
        _company_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("number", sa.String(100), nullable=False),
        sa.Column("is_group", sa.Boolean(), nullable=False),
        sa.Column("disable_bot", sa.Boolean(), nullable=False),
        _ts("created_at"),
    )
    op.create_index("idx_contacts_company_number", "contacts", ["company_id", "number"])

    op.create_table(
        "queues",
        _id(),
        _company_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("new_ticket_on_transfer", sa.Boolean(), nullable=False),
        sa.Column("integration_id", sa.Uuid(), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("company_id", "name", name="uq_queue_name"),
    )
    op.create_index("idx_queues_company", "queues", ["company_id"])

    op.create_table(
        "queue_members",
        _id(),
        sa.Column("queue_id", sa.Uuid(), sa.ForeignKey("queues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("queue_id", "user_id", name="uq_queue_member"),
    )
    op.create_index("idx_queue_members_user", "queue_members", ["user_id"])

    # Tickets & tracking
    op.create_table(
        "tickets",
        _id(),
        _company_fk(),
        sa.Column("contact_id", sa.Uuid(), sa.ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("channel_id", sa.Uuid(), sa.ForeignKey("channels.id", ondelete="CASCADE"), nullable=False),
        sa.Column("queue_id", sa.Uuid(), sa.ForeignKey("queues.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", _enum("ticket_status", "pending", "open", "closed"), nullable=False),
        sa.Column("unread_messages", sa.Integer(), nullable=False),
        sa.Column("last_message", sa.Text(), nullable=True),
        sa.Column("value", sa.Numeric(10, 2), nullable=True),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("is_group", sa.Boolean(), nullable=False),
        sa.Column("chatbot", sa.Boolean(), nullable=False),
        sa.Column("use_integration", sa.Boolean(), nullable=False),
        sa.Column("integration_id", sa.Uuid(), nullable=True),
        sa.Column("integration_session_id", sa.String(255), nullable=True),
        sa.Column("amount_used_bot_queues", sa.Integer(), nullable=False),
        _ts("imported_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index(
        "idx_tickets_contact_channel_status",
        "tickets",
        ["company_id", "contact_id", "channel_id", "status"],
    )
    op.create_index("idx_tickets_company_status", "tickets", ["company_id", "status"])
    op.create_index("idx_tickets_company_updated", "tickets", ["company_id", "updated_at"])

    op.create_table(
        "ticket_trackings",
        _id(),
        sa.Column("ticket_id", sa.Uuid(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        _company_fk(),
        sa.Column("channel_id", sa.Uuid(), sa.ForeignKey("channels.id", ondelete="SET NULL"), nullable=True),
        sa.Column("queue_id", sa.Uuid(), sa.ForeignKey("queues.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("started_at", nullable=True),
        _ts("queued_at", nullable=True),
        _ts("finished_at", nullable=True),
        _ts("rating_at", nullable=True),
        sa.Column("rated", sa.Boolean(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_ticket_trackings_ticket_open", "ticket_trackings", ["ticket_id", "finished_at"])
    op.create_index("idx_ticket_trackings_company", "ticket_trackings", ["company_id", "created_at"])

    # Kanban
    op.create_table(
        "kanban_boards",
        _id(),
        _company_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("default_view", _enum("kanban_board_view", "kanban", "list", "calendar"), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_kanban_boards_company", "kanban_boards", ["company_id", "active"])

    op.create_table(
        "kanban_lanes",
        _id(),
        sa.Column("board_id", sa.Uuid(), sa.ForeignKey("kanban_boards.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("card_limit", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("queue_id", sa.Uuid(), sa.ForeignKey("queues.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_kanban_lanes_board_position", "kanban_lanes", ["board_id", "position"])

    op.create_table(
        "kanban_cards",
        _id(),
        sa.Column("lane_id", sa.Uuid(), sa.ForeignKey("kanban_lanes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        _ts("due_date", nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        sa.Column("value", sa.Numeric(10, 2), nullable=True),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("assigned_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("contact_id", sa.Uuid(), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("ticket_id", sa.Uuid(), sa.ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("tags", JSON, nullable=False),
        sa.Column("metadata", JSON, nullable=False),
        _ts("started_at", nullable=True),
        _ts("completed_at", nullable=True),
        sa.Column("time_in_lane", sa.Integer(), nullable=False),
        sa.Column("is_blocked", sa.Boolean(), nullable=False),
        sa.Column("block_reason", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_kanban_cards_lane", "kanban_cards", ["lane_id", "is_archived"])
    op.create_index("idx_kanban_cards_ticket", "kanban_cards", ["ticket_id", "is_archived"])

    op.create_table(
        "kanban_checklist_templates",
        _id(),
        _company_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("items_template", JSON, nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index(
        "idx_kanban_checklist_templates_company",
        "kanban_checklist_templates",
        ["company_id", "active"],
    )

    op.create_table(
        "kanban_checklist_items",
        _id(),
        sa.Column("card_id", sa.Uuid(), sa.ForeignKey("kanban_cards.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "template_id",
            sa.Uuid(),
            sa.ForeignKey("kanban_checklist_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("checked", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False),
        sa.Column("assigned_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("checked_by_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("checked_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index(
        "idx_kanban_checklist_items_card_position",
        "kanban_checklist_items",
        ["card_id", "position"],
    )

    op.create_table(
        "kanban_metrics",
        _id(),
        _company_fk(),
        sa.Column("board_id", sa.Uuid(), sa.ForeignKey("kanban_boards.id", ondelete="CASCADE"), nullable=True),
        sa.Column("lane_id", sa.Uuid(), sa.ForeignKey("kanban_lanes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("card_id", sa.Uuid(), sa.ForeignKey("kanban_cards.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "metric_type",
            _enum("kanban_metric_type", "time_in_lane", "conversion_rate", "throughput", "lead_time"),
            nullable=False,
        ),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("metric_data", JSON, nullable=False),
        _ts("period_start", nullable=True),
        _ts("period_end", nullable=True),
        _ts("created_at"),
    )
    op.create_index("idx_kanban_metrics_board_type", "kanban_metrics", ["board_id", "metric_type", "created_at"])
    op.create_index("idx_kanban_metrics_company", "kanban_metrics", ["company_id", "created_at"])


def downgrade() -> None:
    for table in (
        "kanban_metrics",
        "kanban_checklist_items",
        "kanban_checklist_templates",
        "kanban_cards",
        "kanban_lanes",
        "kanban_boards",
        "ticket_trackings",
        "tickets",
        "queue_members",
        "queues",
        "contacts",
        "settings",
        "users",
        "channels",
        "companies",
    ):
        op.drop_table(table)
