"""
Invitation Code Models
Redeemable codes granting company membership, with usage history
"""

import enum

from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, ForeignKey, CheckConstraint, Index, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.models.base import BaseModel, as_utc, utcnow


class InvitationCodeStatus(enum.Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"  # used at least once, uses still available
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"
    DEACTIVATED = "deactivated"


class InvitationCode(BaseModel):
    """Company invitation code"""
    __tablename__ = "invitation_codes"

    code = Column(String(16), nullable=False, unique=True, index=True)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    company = relationship("Company", lazy="selectin")
    usages = relationship(
        "InvitationCodeUsage",
        back_populates="invitation_code",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvitationCodeUsage.used_at",
    )

    __table_args__ = (
        CheckConstraint("max_uses IS NULL OR max_uses >= 1", name="ck_invitation_codes_max_uses_positive"),
        CheckConstraint("max_uses IS NULL OR current_uses <= max_uses", name="ck_invitation_codes_uses_within_max"),
        Index("ix_invitation_codes_company_active", "company_id", "is_active"),
    )

    def __repr__(self):
        return f"<InvitationCode(code='{self.code}', uses={self.current_uses}/{self.max_uses})>"

    def is_expired(self, now=None) -> bool:
        expires_at = as_utc(self.expires_at)
        return expires_at is not None and expires_at <= (now or utcnow())

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    @property
    def remaining_uses(self):
        if self.max_uses is None:
            return None
        return max(0, self.max_uses - self.current_uses)

    def status(self, now=None) -> InvitationCodeStatus:
        # Exhaustion auto-deactivates, so it is checked before the manual flag
        if self.is_exhausted:
            return InvitationCodeStatus.EXHAUSTED
        if self.is_expired(now):
            return InvitationCodeStatus.EXPIRED
        if not self.is_active:
            return InvitationCodeStatus.DEACTIVATED
        if self.current_uses > 0:
            return InvitationCodeStatus.CONSUMED
        return InvitationCodeStatus.ACTIVE

    def is_redeemable(self, now=None) -> bool:
        return self.status(now) in (InvitationCodeStatus.ACTIVE, InvitationCodeStatus.CONSUMED)


class InvitationCodeUsage(BaseModel):
    """One redemption of an invitation code"""
    __tablename__ = "invitation_code_usages"

    invitation_code_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("invitation_codes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    invitation_code = relationship("InvitationCode", back_populates="usages")

    def __repr__(self):
        return f"<InvitationCodeUsage(code_id='{self.invitation_code_id}', account_id='{self.account_id}')>"
