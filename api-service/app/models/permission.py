"""
Permission Model
Catalog of permission codes grouped by category
"""

from sqlalchemy import Column, String, Text, Index
from app.models.base import BaseModel


class Permission(BaseModel):
    """A single grantable permission, identified by its stable code"""
    __tablename__ = "permissions"

    code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    module = Column(String(64), nullable=False)
    category = Column(String(20), nullable=False, index=True)  # PermissionCategory value

    __table_args__ = (
        Index('ix_permission_category_module', 'category', 'module'),
    )

    def __repr__(self):
        return f"<Permission(code='{self.code}', category='{self.category}')>"
