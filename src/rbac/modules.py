"""
Module Registry - static list of application modules.

Each module is a functional area of the admin panel that permissions
are scoped to. The registry is seeded into the modules table; the
slug (name) is stable and never renamed.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .permissions import Action, CRUD_ACTIONS


@dataclass(frozen=True)
class ModuleDefinition:
    """Definition of an application module."""
    name: str
    display_name: str
    description: str
    category: str
    order_index: int
    actions: Tuple[Action, ...] = CRUD_ACTIONS


MODULES: List[ModuleDefinition] = [
    ModuleDefinition(
        name="dashboard",
        display_name="Dashboard",
        description="Overview metrics and activity",
        category="reporting",
        order_index=1,
        actions=(Action.VIEW,),
    ),
    ModuleDefinition(
        name="campaigns",
        display_name="Campaigns",
        description="Advertising campaigns",
        category="operations",
        order_index=2,
        actions=CRUD_ACTIONS + (Action.EXPORT,),
    ),
    ModuleDefinition(
        name="campaign_types",
        display_name="Campaign Types",
        description="Campaign type catalog",
        category="operations",
        order_index=3,
    ),
    ModuleDefinition(
        name="campaign_data",
        display_name="Campaign Data",
        description="Daily campaign spend and performance rows",
        category="operations",
        order_index=4,
        actions=CRUD_ACTIONS + (Action.EXPORT,),
    ),
    ModuleDefinition(
        name="brands",
        display_name="Brands",
        description="Advertised brands",
        category="operations",
        order_index=5,
    ),
    ModuleDefinition(
        name="business_managers",
        display_name="Business Managers",
        description="Facebook business managers",
        category="assets",
        order_index=6,
    ),
    ModuleDefinition(
        name="facebook_accounts",
        display_name="Facebook Accounts",
        description="Facebook ad accounts",
        category="assets",
        order_index=7,
    ),
    ModuleDefinition(
        name="facebook_pages",
        display_name="Facebook Pages",
        description="Facebook pages linked to ad accounts",
        category="assets",
        order_index=8,
    ),
    ModuleDefinition(
        name="accounts",
        display_name="Accounts",
        description="Third-party advertising accounts",
        category="assets",
        order_index=9,
    ),
    ModuleDefinition(
        name="cards",
        display_name="Cards",
        description="Payment cards used for ad spend",
        category="billing",
        order_index=10,
    ),
    ModuleDefinition(
        name="card_users",
        display_name="Card Users",
        description="Card-to-user assignments",
        category="billing",
        order_index=11,
    ),
    ModuleDefinition(
        name="users",
        display_name="Users",
        description="Admin panel users and role assignment",
        category="administration",
        order_index=12,
    ),
    ModuleDefinition(
        name="roles",
        display_name="Roles",
        description="Role definitions and levels",
        category="administration",
        order_index=13,
    ),
    ModuleDefinition(
        name="permissions",
        display_name="Permissions",
        description="Role permission assignment and audit",
        category="administration",
        order_index=14,
        actions=(Action.READ, Action.MANAGE),
    ),
    ModuleDefinition(
        name="reports",
        display_name="Reports",
        description="Reporting and exports",
        category="reporting",
        order_index=15,
        actions=(Action.READ, Action.EXPORT),
    ),
]


_MODULES_BY_NAME: Dict[str, ModuleDefinition] = {m.name: m for m in MODULES}


def get_module(name: str) -> Optional[ModuleDefinition]:
    """Look up a module definition by slug."""
    return _MODULES_BY_NAME.get(name)
