"""
Subscription plan names shared by tenants and subscriptions
"""

from enum import Enum


class PlanName(str, Enum):
    """Plans offered in the fixed catalog"""
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"
