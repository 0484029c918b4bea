"""
SQLAlchemy Models Package
BizDesk Database Models
"""

from app.models.permission import Permission
from app.models.company import Company
from app.models.role import Role, role_permissions
from app.models.account import Account
from app.models.membership import CompanyMembership
from app.models.invitation_code import InvitationCode, InvitationCodeStatus, InvitationCodeUsage

__all__ = [
    "Permission",
    "Company",
    "Role",
    "role_permissions",
    "Account",
    "CompanyMembership",
    "InvitationCode",
    "InvitationCodeStatus",
    "InvitationCodeUsage",
]
