"""
Fixed plan catalog: pricing, limits and feature sets
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List

from tenant_hub.models.plan import PlanName
from tenant_hub.models.subscription import BillingCycle

UNLIMITED = -1

# Usage metrics that are measured against a plan limit
METRIC_LIMITS: Dict[str, str] = {
    "users": "maxUsers",
    "projects": "maxProjects",
    "storage": "maxStorage",
    "apiCalls": "apiCallsPerMonth",
}


@dataclass(frozen=True)
class PlanDefinition:
    """Catalog entry for one plan"""
    name: PlanName
    display_name: str
    description: str
    monthly_price: Decimal
    yearly_price: Decimal
    limits: Dict[str, int]
    features: List[str] = field(default_factory=list)

    def price_for(self, cycle: BillingCycle) -> Decimal:
        return self.yearly_price if cycle == BillingCycle.YEARLY else self.monthly_price

    def limit(self, key: str) -> int:
        return self.limits.get(key, UNLIMITED)

    def to_dict(self) -> dict:
        return {
            "id": self.name.value,
            "name": self.display_name,
            "description": self.description,
            "pricing": {
                "monthly": float(self.monthly_price),
                "yearly": float(self.yearly_price),
            },
            "limits": dict(self.limits),
            "features": list(self.features),
        }


PLAN_CATALOG: Dict[PlanName, PlanDefinition] = {
    PlanName.BASIC: PlanDefinition(
        name=PlanName.BASIC,
        display_name="Basic Plan",
        description="Perfect for small teams getting started",
        monthly_price=Decimal("29.00"),
        yearly_price=Decimal("290.00"),
        limits={"maxUsers": 10, "maxProjects": 5, "maxStorage": 1024, "apiCallsPerMonth": 10000},
        features=["up_to_10_users", "up_to_5_projects", "basic_analytics", "email_support"],
    ),
    PlanName.PROFESSIONAL: PlanDefinition(
        name=PlanName.PROFESSIONAL,
        display_name="Professional Plan",
        description="Advanced features for growing teams",
        monthly_price=Decimal("99.00"),
        yearly_price=Decimal("990.00"),
        limits={"maxUsers": 50, "maxProjects": 25, "maxStorage": 10240, "apiCallsPerMonth": 100000},
        features=[
            "up_to_50_users", "up_to_25_projects", "advanced_analytics",
            "ai_analysis", "priority_support", "api_access",
        ],
    ),
    PlanName.ENTERPRISE: PlanDefinition(
        name=PlanName.ENTERPRISE,
        display_name="Enterprise Plan",
        description="Full-featured solution for large organizations",
        monthly_price=Decimal("299.00"),
        yearly_price=Decimal("2990.00"),
        limits={"maxUsers": UNLIMITED, "maxProjects": UNLIMITED, "maxStorage": UNLIMITED, "apiCallsPerMonth": UNLIMITED},
        features=[
            "unlimited_users", "unlimited_projects", "advanced_analytics", "ai_analysis",
            "custom_integrations", "dedicated_support", "full_api_access", "custom_branding",
            "sso_integration",
        ],
    ),
}


def get_plan(plan: PlanName) -> PlanDefinition:
    """Look up a plan in the catalog"""
    return PLAN_CATALOG[PlanName(plan)]


def list_plans() -> List[PlanDefinition]:
    return list(PLAN_CATALOG.values())


def is_within_limit(limit: int, amount: float) -> bool:
    """True if amount does not exceed limit (-1 means unlimited)"""
    return limit == UNLIMITED or amount <= limit


def tenant_config(plan: PlanName) -> dict:
    """Plan-derived runtime configuration for a tenant"""
    definition = get_plan(plan)
    features = set(definition.features)
    return {
        "plan": definition.name.value,
        "limits": dict(definition.limits),
        "features": {
            "analytics": "advanced" if "advanced_analytics" in features else "basic",
            "aiAnalysis": "ai_analysis" in features,
            "apiAccess": bool(features & {"api_access", "full_api_access"}),
            "customIntegrations": "custom_integrations" in features,
            "customBranding": "custom_branding" in features,
            "sso": "sso_integration" in features,
        },
        "support": (
            "dedicated" if "dedicated_support" in features
            else "priority" if "priority_support" in features
            else "email"
        ),
    }
