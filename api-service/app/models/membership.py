"""
Company Membership Model
(Account, Company, Role) association
"""

from sqlalchemy import Column, Boolean, DateTime, ForeignKey, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.models.base import BaseModel


class CompanyMembership(BaseModel):
    """Membership of an account in a company, carrying the role held there"""
    __tablename__ = "company_memberships"

    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Uuid(as_uuid=True), ForeignKey("roles.id"), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("Account", back_populates="memberships", lazy="selectin")
    company = relationship("Company", lazy="selectin")
    role = relationship("Role", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("account_id", "company_id", name="uq_membership_account_company"),
        Index("ix_membership_company_active", "company_id", "is_active"),
    )

    def __repr__(self):
        return f"<CompanyMembership(account_id='{self.account_id}', company_id='{self.company_id}', role_id='{self.role_id}')>"

    def assign_role(self, role) -> None:
        """Attach a role; the role must be owned by the membership's company"""
        if role is not None and role.company_id != self.company_id:
            raise ValueError("Role belongs to a different company")
        self.role = role
        self.role_id = role.id if role is not None else None
