"""
Company Model
Tenant boundary: roles, memberships and invitation codes belong to one company
"""

from sqlalchemy import Column, String, Text, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from app.models.base import BaseModel


class Company(BaseModel):
    """Company (tenant)"""
    __tablename__ = "companies"

    name = Column(String(120), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # accounts.current_company_id points back here, so the owner FK is added after both tables exist
    owner_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id", use_alter=True, name="fk_companies_owner_id_accounts", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    roles = relationship("Role", back_populates="company", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Company(name='{self.name}')>"
