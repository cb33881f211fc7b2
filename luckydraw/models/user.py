from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import CheckConstraint, DateTime, String, UniqueConstraint, select
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from .base import Base
from .id_type import ID_TYPE
from ..db.utils import dt_iso

USER_ROLES = ("guest", "organizer", "super_admin")
DRAW_OPERATOR_ROLES = frozenset({"organizer", "super_admin"})


class User(Base):
    """An account acting on a tenant's events.

    Only the role is relevant to the draw engine: organizers and super admins
    may configure, execute and redraw; guests may only hold entries.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="guest")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        CheckConstraint(
            "role IN ('guest','organizer','super_admin')", name="role_enum"
        ),
    )

    def __init__(
        self,
        *,
        tenant_id: str,
        email: str,
        role: str = "guest",
        display_name: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.email = email
        self.role = role
        self.display_name = display_name
        if created_at is not None:
            self.created_at = created_at

    @validates("email")
    def _normalize_email(self, _key: str, value: str) -> str:
        return value.strip().lower()

    @validates("role")
    def _check_role(self, _key: str, value: str) -> str:
        if value not in USER_ROLES:
            raise ValueError(f"Unknown role: {value!r}")
        return value

    @property
    def is_draw_operator(self) -> bool:
        """Whether this user may configure, execute and redraw lucky draws."""
        return self.role in DRAW_OPERATOR_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == "super_admin"

    @classmethod
    def get_by_email(
        cls, session: Session, tenant_id: str, email: str
    ) -> Optional["User"]:
        return session.scalar(
            select(cls).where(
                cls.tenant_id == tenant_id, cls.email == email.strip().lower()
            )
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role,
            "created_at": dt_iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, tenant_id='{self.tenant_id}', role='{self.role}')>"
