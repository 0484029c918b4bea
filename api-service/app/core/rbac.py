"""
RBAC helpers and canonical permission definitions for BizDesk.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional


class PermissionCategory(str, Enum):
    GENERAL = "GENERALE"
    PAPERWORK = "PAPERASSE"
    ADMINISTRATION = "ADMINISTRATION"
    MANAGEMENT = "GESTION"


class SystemRole(str, Enum):
    """Global privilege tier, independent of per-company roles."""

    USER = "user"
    SUPER_ADMIN = "super_admin"
    TECHNICIAN = "technician"


class ContractType(str, Enum):
    DIRECTION = "DIRECTION"
    PERMANENT = "CDI"
    FIXED_TERM = "CDD"
    INTERN = "STAGIAIRE"


SYSTEM_ROLE_LABELS: dict[SystemRole, str] = {
    SystemRole.TECHNICIAN: "Technician",
    SystemRole.SUPER_ADMIN: "Super administrator",
    SystemRole.USER: "User",
}

# Tiers allowed to create companies
COMPANY_CREATOR_ROLES: frozenset[SystemRole] = frozenset({SystemRole.TECHNICIAN, SystemRole.SUPER_ADMIN})


@dataclass(frozen=True)
class PermissionDefinition:
    code: str
    name: str
    description: str
    module: str
    category: PermissionCategory


PERMISSION_CATALOG: tuple[PermissionDefinition, ...] = (
    # General
    PermissionDefinition("VIEW_GENERALE_CATEGORY", "View general category", "Access to the general category", "General", PermissionCategory.GENERAL),
    PermissionDefinition("MANAGE_VENTES_HISTORY", "Manage sales history", "Edit or delete sales history entries", "Sales", PermissionCategory.GENERAL),
    PermissionDefinition("CREATE_PRESTATION_CATEGORIES", "Create service categories", "Create service (prestation) categories", "Services", PermissionCategory.GENERAL),
    # Paperwork
    PermissionDefinition("VIEW_PAPERASSE_CATEGORY", "View paperwork category", "Access to the paperwork category", "Paperwork", PermissionCategory.PAPERWORK),
    PermissionDefinition("ACCESS_BILAN", "Access balance sheets", "Read financial balance sheets", "Balance", PermissionCategory.PAPERWORK),
    PermissionDefinition("ACCESS_CHARGES", "Access expenses", "Read company expenses", "Expenses", PermissionCategory.PAPERWORK),
    PermissionDefinition("MANAGE_CHARGES", "Manage expenses", "Create or delete company expenses", "Expenses", PermissionCategory.PAPERWORK),
    PermissionDefinition("VIEW_FACTURES", "View invoices", "Read invoices", "Invoices", PermissionCategory.PAPERWORK),
    PermissionDefinition("CREATE_FACTURES", "Create invoices", "Issue new invoices", "Invoices", PermissionCategory.PAPERWORK),
    # Administration
    PermissionDefinition("VIEW_ADMINISTRATION_CATEGORY", "View administration category", "Access to the administration category", "Administration", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("MANAGE_EMPLOYES", "Manage employees", "Edit or dismiss an employee", "Employees", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("ASSIGN_EMPLOYEE_ROLES", "Assign employee roles", "Assign or change employee roles", "Employees", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("GENERATE_EMPLOYEE_CODE", "Generate employee codes", "Generate invitation codes for new employees", "Employees", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("MANAGE_VENTES", "Manage sales", "Edit or delete a sale", "Sales", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("MANAGE_SALAIRES", "Manage salaries", "Edit or delete a salary", "Salaries", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("DELETE_FACTURES", "Delete invoices", "Delete an invoice", "Invoices", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("DELETE_TIMERS", "Delete timer sessions", "Delete timer sessions from history", "Timers", PermissionCategory.ADMINISTRATION),
    PermissionDefinition("MANAGE_SERVICE_SESSIONS", "Manage service sessions", "Edit or delete employee service sessions", "Services", PermissionCategory.ADMINISTRATION),
    # Management
    PermissionDefinition("VIEW_GESTION_CATEGORY", "View management category", "Access to the management category", "Management", PermissionCategory.MANAGEMENT),
    PermissionDefinition("MANAGE_ROLES", "Manage roles", "Create, edit and delete roles", "Roles", PermissionCategory.MANAGEMENT),
    PermissionDefinition("MANAGE_ITEMS", "Manage items", "Manage the item catalog", "Items", PermissionCategory.MANAGEMENT),
    PermissionDefinition("MANAGE_PARTNERSHIPS", "Manage partnerships", "Manage partnerships", "Partnerships", PermissionCategory.MANAGEMENT),
    PermissionDefinition("MANAGE_STOCK", "Manage stock", "Manage stock levels", "Stock", PermissionCategory.MANAGEMENT),
    PermissionDefinition("MANAGE_COMPANY", "Manage company", "Edit company settings", "Company", PermissionCategory.MANAGEMENT),
)

ALL_PERMISSION_CODES: tuple[str, ...] = tuple(p.code for p in PERMISSION_CATALOG)

CATEGORY_BY_CODE: dict[str, PermissionCategory] = {p.code: p.category for p in PERMISSION_CATALOG}

ADMIN_ROLE_NAME = "Admin"
EMPLOYEE_ROLE_NAME = "Employee"

EMPLOYEE_BASE_PERMISSIONS: tuple[str, ...] = (
    "VIEW_GENERALE_CATEGORY",
    "VIEW_PAPERASSE_CATEGORY",
    "VIEW_FACTURES",
    "CREATE_FACTURES",
)


def parse_category(value: str | PermissionCategory) -> PermissionCategory:
    if isinstance(value, PermissionCategory):
        return value
    normalized = value.strip().upper()
    try:
        return PermissionCategory(normalized)
    except ValueError:
        return PermissionCategory[normalized]


def category_grant_codes(category: PermissionCategory) -> set[str]:
    """Codes that grant a whole category by naming convention."""
    return {f"VIEW_{category.value}_CATEGORY", f"MANAGE_{category.value}"}


def has_category_access(
    codes: Iterable[str],
    category: str | PermissionCategory,
    category_by_code: Optional[Mapping[str, str | PermissionCategory]] = None,
) -> bool:
    """
    An effective permission set grants a category when one of its codes is
    catalogued under that category, or when it holds the category's
    ``VIEW_<CATEGORY>_CATEGORY`` / ``MANAGE_<CATEGORY>`` code.
    """
    target = parse_category(category)
    lookup = category_by_code if category_by_code is not None else CATEGORY_BY_CODE
    held = set(codes)

    if held & category_grant_codes(target):
        return True

    for code in held:
        code_category = lookup.get(code)
        if code_category is not None and parse_category(code_category) == target:
            return True
    return False


def accessible_categories(
    codes: Iterable[str],
    category_by_code: Optional[Mapping[str, str | PermissionCategory]] = None,
) -> list[PermissionCategory]:
    held = set(codes)
    return [
        category for category in PermissionCategory
        if has_category_access(held, category, category_by_code)
    ]
