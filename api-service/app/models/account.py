"""
Account Model
A login identity scoped to one company; linked accounts share a family id
"""

from typing import Optional

from sqlalchemy import Column, String, Boolean, DateTime, Float, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.rbac import SystemRole
from app.models.base import BaseModel


class Account(BaseModel):
    """User account"""
    __tablename__ = "accounts"

    # Credentials
    username = Column(String(64), nullable=False, unique=True, index=True)
    hashed_password = Column(String(128), nullable=True)  # unset for Discord-only accounts

    # Legal identity, filled by the profile completion step
    first_name = Column(String(80), nullable=True)
    last_name = Column(String(80), nullable=True)

    # Contact identifiers
    email = Column(String(254), nullable=True, unique=True, index=True)
    phone_number = Column(String(32), nullable=True)
    bank_account = Column(String(16), nullable=True)

    # External identity (Discord)
    discord_id = Column(String(32), nullable=True, unique=True, index=True)
    discord_username = Column(String(64), nullable=True)
    avatar_url = Column(String(500), nullable=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    system_role = Column(String(20), default=SystemRole.USER.value, nullable=False)
    company_validated = Column(Boolean, default=False, nullable=False)

    # Linked accounts of the same person share this value
    account_family_id = Column(String(64), nullable=True, index=True)

    current_company_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Payroll
    advances = Column(Float, default=0.0, nullable=False)
    bonuses = Column(Float, default=0.0, nullable=False)

    last_login_at = Column(DateTime(timezone=True), nullable=True, index=True)

    memberships = relationship(
        "CompanyMembership",
        back_populates="account",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CompanyMembership.joined_at",
    )

    __table_args__ = (
        Index('ix_account_family_active', 'account_family_id', 'is_active'),
    )

    def __repr__(self):
        return f"<Account(username='{self.username}')>"

    @property
    def display_name(self) -> str:
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.discord_username or self.username

    @property
    def is_technician(self) -> bool:
        return self.system_role == SystemRole.TECHNICIAN.value

    @property
    def has_complete_profile(self) -> bool:
        return bool(self.first_name and self.last_name)

    def membership_for(self, company_id, active_only: bool = True):
        for membership in self.memberships or []:
            if membership.company_id == company_id and (membership.is_active or not active_only):
                return membership
        return None

    @property
    def active_memberships(self) -> list:
        return [membership for membership in self.memberships or [] if membership.is_active]

    # Current membership is derived from the memberships list; it is never stored twice

    @property
    def current_membership(self):
        if self.current_company_id is None:
            return None
        return self.membership_for(self.current_company_id)

    @property
    def company(self):
        membership = self.current_membership
        return membership.company if membership else None

    @property
    def role(self):
        membership = self.current_membership
        return membership.role if membership else None

    def set_current_company(self, company_id: Optional[object]) -> None:
        """Point the account at one of its own active memberships, or clear it"""
        if company_id is not None and self.membership_for(company_id) is None:
            raise ValueError("Account has no active membership in that company")
        self.current_company_id = company_id
