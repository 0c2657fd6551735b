"""SQLAlchemy models for admin accounts."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, PrimaryKeyConstraint, String, func
from sqlalchemy.orm import Mapped, mapped_column

from certauth.models import Base


class AdminAccount(Base):
    """
    Admin login account for the certificate platform.

    Only the account itself is persisted. Active sessions live in the
    in-memory session registry and do not survive a restart.
    """

    __tablename__ = "admin_account"
    __table_args__ = (
        PrimaryKeyConstraint("admin_no", name="admin_account_pk"),
        Index("admin_account_username_uk", "username", unique=True),
        Index("admin_account_email_uk", "email", unique=True),
    )

    admin_no: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Unique admin identifier (credential sub claim)",
    )
    username: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Login name, also shown as display name",
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Contact address, also accepted as login identifier",
    )
    password_hash: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="bcrypt hash of the admin password",
    )
    date_created: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        comment="Account creation timestamp",
    )

    @property
    def owner_id(self) -> str:
        """Identity used as session owner and credential subject."""
        return str(self.admin_no)
