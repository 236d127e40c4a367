"""
Permission constants, role definitions and the role -> permission matrix.

Roles are fixed (no per-user overrides): every check is a lookup in
ROLE_PERMISSIONS. Route decorators and services both read from here.
"""

# =============================================================================
# ROLES
# =============================================================================

SUPER_ADMIN = "SUPER_ADMIN"
ADMIN = "ADMIN"
SALES = "SALES"
WAREHOUSE = "WAREHOUSE"

ROLES = (SUPER_ADMIN, ADMIN, SALES, WAREHOUSE)

# Roles an ADMIN may create and edit; SUPER_ADMIN manages every role
ADMIN_MANAGEABLE_ROLES = (SALES, WAREHOUSE)


# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    CATALOG = "CATALOG"
    SALES = "SALES"
    STOCK = "STOCK"
    CUSTOMERS = "CUSTOMERS"
    REPORTS = "REPORTS"
    SYSTEM = "SYSTEM"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # CATALOG PERMISSIONS
    (
        "VIEW_CATALOG",
        "View Catalog",
        "View categories, products and variants",
        PermissionCategory.CATALOG
    ),
    (
        "MANAGE_CATALOG",
        "Manage Catalog",
        "Create, edit, deactivate and delete products and variants",
        PermissionCategory.CATALOG
    ),
    (
        "VIEW_STOCK_LEVELS",
        "View Stock Levels",
        "View on-hand stock with low and out-of-stock filters",
        PermissionCategory.CATALOG
    ),

    # SALES PERMISSIONS
    (
        "VIEW_SALES",
        "View Sales",
        "View sales and invoices",
        PermissionCategory.SALES
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Record new sales (decrements stock)",
        PermissionCategory.SALES
    ),
    (
        "CANCEL_SALE",
        "Cancel Sale",
        "Cancel a completed sale and restore its stock",
        PermissionCategory.SALES
    ),

    # STOCK PERMISSIONS
    (
        "VIEW_STOCK_ENTRIES",
        "View Stock Entries",
        "View incoming stock records",
        PermissionCategory.STOCK
    ),
    (
        "CREATE_STOCK_ENTRY",
        "Create Stock Entry",
        "Record incoming stock (increments stock, sets cost price)",
        PermissionCategory.STOCK
    ),
    (
        "CANCEL_STOCK_ENTRY",
        "Cancel Stock Entry",
        "Cancel a stock entry whose stock has not been consumed",
        PermissionCategory.STOCK
    ),

    # CUSTOMER PERMISSIONS
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "View customers and their purchase statistics",
        PermissionCategory.CUSTOMERS
    ),
    (
        "MANAGE_CUSTOMERS",
        "Manage Customers",
        "Create and edit customers",
        PermissionCategory.CUSTOMERS
    ),

    # REPORTS
    (
        "VIEW_REPORTS",
        "View Reports",
        "View dashboard and sales reports",
        PermissionCategory.REPORTS
    ),

    # SYSTEM PERMISSIONS
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create, edit and deactivate user accounts",
        PermissionCategory.SYSTEM
    ),
    (
        "MANAGE_SETTINGS",
        "Manage Settings",
        "Edit the company profile and document prefixes",
        PermissionCategory.SYSTEM
    ),
    (
        "VIEW_ACTIVITY_LOG",
        "View Activity Log",
        "View the audit trail of all mutating actions",
        PermissionCategory.SYSTEM
    ),
]

ALL_PERMISSIONS = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)


# =============================================================================
# ROLE -> PERMISSION MATRIX
# =============================================================================

ROLE_PERMISSIONS = {
    SUPER_ADMIN: ALL_PERMISSIONS,

    ADMIN: ALL_PERMISSIONS - {"VIEW_ACTIVITY_LOG"},

    SALES: frozenset({
        "VIEW_CATALOG",
        "VIEW_STOCK_LEVELS",
        "VIEW_SALES",
        "CREATE_SALE",
        "VIEW_CUSTOMERS",
        "MANAGE_CUSTOMERS",
    }),

    WAREHOUSE: frozenset({
        "VIEW_CATALOG",
        "VIEW_STOCK_LEVELS",
        "VIEW_STOCK_ENTRIES",
        "CREATE_STOCK_ENTRY",
        "CANCEL_STOCK_ENTRY",
    }),
}


def get_role_permissions(role: str) -> frozenset:
    return ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(role: str, permission_code: str) -> bool:
    return permission_code in get_role_permissions(role)


def manageable_roles(actor_role: str) -> tuple:
    """Roles the actor may assign when creating or editing users."""
    if actor_role == SUPER_ADMIN:
        return ROLES
    if actor_role == ADMIN:
        return ADMIN_MANAGEABLE_ROLES
    return ()


def can_manage_role(actor_role: str, target_role: str, new_role: str | None = None) -> bool:
    """
    True when the actor may edit a user currently holding target_role,
    and (if given) move them to new_role.
    """
    allowed = manageable_roles(actor_role)
    if target_role not in allowed:
        return False
    if new_role is not None and new_role not in allowed:
        return False
    return True
