"""Canonical Plan Registry - Single Source of Truth for Target plan definitions.

This is the AUTHORITATIVE source for:
- Plan names (the `name` column of subscription_plans)
- Usage limits
- Feature entitlements, as typed feature lists
- Capabilities consulted by the sync job (e.g. whether imported clients may be kept)

RULES:
1. Entitlements are derived from the plan name only, never from free text
2. Capabilities are built fresh per call; nothing here is mutable shared state
3. Unknown plan names resolve to the lowest tier

Plan Structure:
- Gratuito: 10 contracts, 3 templates, 1 user
- Profissional: 100 contracts, unlimited templates, 3 users, client import
- Empresarial: unlimited everything, client import, integrations
"""
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any
import logging

from models import PlanName

logger = logging.getLogger(__name__)

UNLIMITED = -1


# ============================================================================
# FEATURES - Typed feature keys
# ============================================================================
class PlanFeature(str, Enum):
    BASIC_TEMPLATES = "basic_templates"
    PDF_EXPORT = "pdf_export"
    EMAIL_SUPPORT = "email_support"

    PREMIUM_TEMPLATES = "premium_templates"
    ELECTRONIC_SIGNATURE = "electronic_signature"
    PRIORITY_SUPPORT = "priority_support"
    BASIC_API = "basic_api"
    BASIC_REPORTS = "basic_reports"
    EMAIL_NOTIFICATIONS = "email_notifications"
    AUTO_BACKUP = "auto_backup"
    ADVANCED_CLIENT_MANAGEMENT = "advanced_client_management"
    CUSTOM_TEMPLATES = "custom_templates"
    SOURCE_CLIENT_IMPORT = "source_client_import"

    UNLIMITED_CONTRACTS = "unlimited_contracts"
    FULL_API = "full_api"
    ADVANCED_REPORTS = "advanced_reports"
    ANALYTICS = "analytics"
    SUPPORT_24_7 = "support_24_7"
    ADMIN_PANEL = "admin_panel"
    ADVANCED_INTEGRATIONS = "advanced_integrations"
    WHITE_LABEL = "white_label"
    MULTI_USER = "multi_user"
    AUTOMATIONS = "automations"
    SSO = "sso"


# ============================================================================
# PLAN DEFINITIONS - Complete plan configuration
# ============================================================================
PLAN_DEFINITIONS = {
    PlanName.GRATUITO: {
        "name": "Gratuito",
        "display_name": "Plano Gratuito",
        "tier": 0,
        "max_contracts": 10,
        "max_templates": 3,
        "max_api_calls": 0,
        "storage_mb": 100,
        "max_users": 1,
    },
    PlanName.PROFISSIONAL: {
        "name": "Profissional",
        "display_name": "Plano Profissional",
        "tier": 1,
        "max_contracts": 100,
        "max_templates": UNLIMITED,
        "max_api_calls": 1000,
        "storage_mb": 1000,
        "max_users": 3,
    },
    PlanName.EMPRESARIAL: {
        "name": "Empresarial",
        "display_name": "Plano Empresarial",
        "tier": 2,
        "max_contracts": UNLIMITED,
        "max_templates": UNLIMITED,
        "max_api_calls": UNLIMITED,
        "storage_mb": UNLIMITED,
        "max_users": UNLIMITED,
    },
}


# ============================================================================
# FEATURE ENTITLEMENT MATRIX - Each tier includes the one below it
# ============================================================================
_GRATUITO_FEATURES = [
    PlanFeature.BASIC_TEMPLATES,
    PlanFeature.PDF_EXPORT,
    PlanFeature.EMAIL_SUPPORT,
]

_PROFISSIONAL_FEATURES = _GRATUITO_FEATURES + [
    PlanFeature.PREMIUM_TEMPLATES,
    PlanFeature.ELECTRONIC_SIGNATURE,
    PlanFeature.PRIORITY_SUPPORT,
    PlanFeature.BASIC_API,
    PlanFeature.BASIC_REPORTS,
    PlanFeature.EMAIL_NOTIFICATIONS,
    PlanFeature.AUTO_BACKUP,
    PlanFeature.ADVANCED_CLIENT_MANAGEMENT,
    PlanFeature.CUSTOM_TEMPLATES,
    PlanFeature.SOURCE_CLIENT_IMPORT,
]

_EMPRESARIAL_FEATURES = _PROFISSIONAL_FEATURES + [
    PlanFeature.UNLIMITED_CONTRACTS,
    PlanFeature.FULL_API,
    PlanFeature.ADVANCED_REPORTS,
    PlanFeature.ANALYTICS,
    PlanFeature.SUPPORT_24_7,
    PlanFeature.ADMIN_PANEL,
    PlanFeature.ADVANCED_INTEGRATIONS,
    PlanFeature.WHITE_LABEL,
    PlanFeature.MULTI_USER,
    PlanFeature.AUTOMATIONS,
    PlanFeature.SSO,
]

FEATURE_MATRIX: Dict[PlanName, Tuple[PlanFeature, ...]] = {
    PlanName.GRATUITO: tuple(_GRATUITO_FEATURES),
    PlanName.PROFISSIONAL: tuple(_PROFISSIONAL_FEATURES),
    PlanName.EMPRESARIAL: tuple(_EMPRESARIAL_FEATURES),
}


@dataclass(frozen=True)
class PlanCapabilities:
    """Capability set of one plan. Built per call by get_plan_capabilities()."""
    plan: PlanName
    features: Tuple[PlanFeature, ...]

    @property
    def source_integration(self) -> bool:
        """Imported clients may be fetched and retained."""
        return PlanFeature.SOURCE_CLIENT_IMPORT in self.features


def resolve_plan_name(name: Optional[str]) -> PlanName:
    """Resolve a plan name string; unknown or empty names resolve to Gratuito."""
    if not name:
        return PlanName.GRATUITO
    try:
        return PlanName(name)
    except ValueError:
        for plan in PlanName:
            if plan.value.lower() == name.strip().lower():
                return plan
    logger.warning(f"Unknown plan name {name!r}, resolving to {PlanName.GRATUITO.value}")
    return PlanName.GRATUITO


def get_plan_capabilities(plan) -> PlanCapabilities:
    """Pure mapping from plan name to its capability set."""
    plan_name = plan if isinstance(plan, PlanName) else resolve_plan_name(plan)
    return PlanCapabilities(
        plan=plan_name,
        features=FEATURE_MATRIX[plan_name],
    )


class PlanRegistryService:
    """Read-only accessors over the plan definitions."""

    def get_plan(self, plan_name: PlanName) -> Dict[str, Any]:
        return dict(PLAN_DEFINITIONS[plan_name])

    def get_features(self, plan_name: PlanName) -> List[str]:
        return [f.value for f in FEATURE_MATRIX[plan_name]]

    def get_plan_seed_documents(self) -> List[Dict[str, Any]]:
        """Documents for the subscription_plans collection (plan_id only used on insert)."""
        return [
            {
                "plan_id": str(uuid.uuid4()),
                **self.get_plan(plan),
                "features": self.get_features(plan),
            }
            for plan in PlanName
        ]


# Singleton instance
plan_registry = PlanRegistryService()
