"""Lease ticket schema: cyclic id sequence, timeout function, expiry trigger."""

from alembic import op
import sqlalchemy as sa

from leasegate.config import MAX_LEASE_ID, settings

# revision identifiers, used by Alembic.
revision = "0001_lease_tickets"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the lease table and the server-side expiry policy."""
    # Ids cycle because rows should not outlive a few lease timeouts.
    op.execute(
        f"CREATE SEQUENCE lease_ticket_id_seq MINVALUE 1 MAXVALUE {MAX_LEASE_ID} CYCLE"
    )

    # The timeout lives in the database so that every writer agrees on it.
    # Changing it means a new migration that replaces this function.
    timeout_seconds = float(settings.lease_timeout_seconds)
    op.execute(
        f"""
        CREATE FUNCTION lease_timeout() RETURNS interval IMMUTABLE LANGUAGE SQL AS $$
            SELECT make_interval(secs => {timeout_seconds})
        $$
        """
    )

    op.create_table(
        "lease_tickets",
        sa.Column(
            "id",
            sa.Integer(),
            primary_key=True,
            server_default=sa.text("nextval('lease_ticket_id_seq')"),
        ),
        sa.Column(
            "creation",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "expiry",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP + lease_timeout()"),
        ),
        sa.Column("title", sa.Text(), nullable=False, server_default=""),
        sa.Column("refresh_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("idx_lease_tickets_expiry", "lease_tickets", ["expiry"])

    op.create_table(
        "lease_sequences",
        sa.Column("name", sa.String(length=64), primary_key=True),
        sa.Column("value", sa.Integer(), nullable=False),
    )

    # No writer can set an arbitrary expiry: every UPDATE recomputes it, and
    # it never moves backwards.
    op.execute(
        """
        CREATE FUNCTION lease_refresh_expiry() RETURNS trigger AS $$
            BEGIN
                NEW.expiry := GREATEST(OLD.expiry, CURRENT_TIMESTAMP + lease_timeout());
                RETURN NEW;
            END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER lease_refresh_expiry BEFORE UPDATE ON lease_tickets
            FOR EACH ROW EXECUTE PROCEDURE lease_refresh_expiry()
        """
    )


def downgrade() -> None:
    """Drop the lease table and its server-side policy."""
    op.execute("DROP TRIGGER IF EXISTS lease_refresh_expiry ON lease_tickets")
    op.execute("DROP FUNCTION IF EXISTS lease_refresh_expiry()")
    op.drop_table("lease_sequences")
    op.drop_index("idx_lease_tickets_expiry", table_name="lease_tickets")
    op.drop_table("lease_tickets")
    op.execute("DROP FUNCTION IF EXISTS lease_timeout()")
    op.execute("DROP SEQUENCE IF EXISTS lease_ticket_id_seq")
