"""Source subscription tier -> Target plan name.

Total mapping: null, empty and unrecognized tiers fall to the lowest plan, so a
typo or a tier the source adds later can never grant a paid plan.
"""
from typing import Optional
import logging

from models import PlanName

logger = logging.getLogger(__name__)

SOURCE_TIER_TO_PLAN = {
    "premium": PlanName.PROFISSIONAL,
    "enterprise": PlanName.EMPRESARIAL,
    "enterprise-annual": PlanName.EMPRESARIAL,
    "free": PlanName.GRATUITO,
    "gratuito": PlanName.GRATUITO,
}

DEFAULT_PLAN = PlanName.GRATUITO


def map_source_tier(tier: Optional[str]) -> PlanName:
    if not isinstance(tier, str):
        return DEFAULT_PLAN
    key = tier.strip().lower()
    plan = SOURCE_TIER_TO_PLAN.get(key)
    if plan is None:
        if key:
            logger.info(f"Unrecognized source tier {tier!r} mapped to {DEFAULT_PLAN.value}")
        return DEFAULT_PLAN
    return plan
