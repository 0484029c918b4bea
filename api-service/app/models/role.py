"""
Role Model
Company-scoped bundle of base permissions plus per-role overrides
"""

from sqlalchemy import Column, String, Text, Boolean, Float, ForeignKey, Table, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.permission_resolver import resolve_effective_permissions
from app.core.rbac import ContractType
from app.models.base import BaseModel, JSONType


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Uuid(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Uuid(as_uuid=True), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Role(BaseModel):
    """Role owned by exactly one company"""
    __tablename__ = "roles"

    name = Column(String(80), nullable=False)
    description = Column(Text, nullable=True)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    # code -> bool; True grants beyond the base set, False revokes even if in the base set
    permission_overrides = Column(JSONType, default=dict, nullable=False)

    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Payroll data co-located with the role
    salary_norm = Column(Float, default=0.0, nullable=False)  # percent
    salary_cap = Column(Float, default=0.0, nullable=False)
    contract_type = Column(String(20), default=ContractType.PERMANENT.value, nullable=False)

    created_by_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)

    company = relationship("Company", back_populates="roles")
    permissions = relationship("Permission", secondary=role_permissions, lazy="selectin", order_by="Permission.code")

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_roles_company_name"),
    )

    def __repr__(self):
        return f"<Role(name='{self.name}', company_id='{self.company_id}')>"

    @property
    def base_permission_codes(self) -> list[str]:
        return [permission.code for permission in self.permissions or []]

    def effective_permissions(self) -> frozenset[str]:
        return resolve_effective_permissions(self.base_permission_codes, self.permission_overrides)

    def set_override(self, code: str, value):
        """Set (True/False) or clear (None) a single override"""
        overrides = dict(self.permission_overrides or {})
        if value is None:
            overrides.pop(code, None)
        else:
            overrides[code] = bool(value)
        # Reassign so the JSON column is flagged dirty
        self.permission_overrides = overrides
