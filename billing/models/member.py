"""Member ORM model: the billed party behind invoices and payments."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing.models import Base, BaseModel


class Member(Base, BaseModel):
    """A billed member.

    Registration and profile management live outside the ledger; this table
    only exists as the owner of invoices and payments.
    """

    __tablename__ = "members"

    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Full name")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    invoices: Mapped[list["Invoice"]] = relationship(  # noqa: F821
        "Invoice",
        back_populates="member",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="member",
    )

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, name={self.name!r}, is_active={self.is_active})>"


__all__ = ["Member"]
