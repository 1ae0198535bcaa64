"""Tenant profile snapshot consumed by the deployment pipeline."""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

MAILBOX_PROVIDERS = ("gmail", "outlook")

_PROVIDER_ALIASES = {
    "gmail": "gmail",
    "google": "gmail",
    "outlook": "outlook",
    "microsoft": "outlook",
}


def normalize_provider(value: Optional[str]) -> Optional[str]:
    """Map a provider name or alias to ``gmail``/``outlook``; None if unknown."""
    if not value:
        return None
    return _PROVIDER_ALIASES.get(value.strip().lower())


def slugify(value: Optional[str], fallback: str = "client") -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or fallback or "client").lower())
    slug = slug.strip("-") or fallback
    return slug[:20]


@dataclass(frozen=True)
class TenantProfile:
    """Read-only snapshot of a tenant's business data for one request."""

    tenant_id: str
    business_config: Mapping[str, Any] = field(default_factory=dict)
    business_types: tuple[str, ...] = ()
    managers: tuple[Mapping[str, Any], ...] = ()
    suppliers: tuple[Mapping[str, Any], ...] = ()
    label_map: Mapping[str, str] = field(default_factory=dict)
    provider_in_use: Optional[str] = None

    @property
    def business(self) -> Mapping[str, Any]:
        return self.business_config.get("business") or {}

    @property
    def business_name(self) -> str:
        return self.business.get("name") or "Client"

    @property
    def slug(self) -> str:
        return slugify(self.business.get("name"), "client")

    @property
    def short_id(self) -> str:
        return self.tenant_id.replace("-", "")[:5]

    @property
    def marker(self) -> str:
        """Name fragment identifying this tenant's remote resources."""
        return f"{self.slug}-{self.short_id}"

    @property
    def workflow_name(self) -> str:
        return f"{self.marker}-workflow"

    def credential_name(self, kind: str) -> str:
        return f"{kind}-{self.marker}"

    def owns_workflow(self, name: str) -> bool:
        return name == self.workflow_name

    def owns_credential(self, name: str) -> bool:
        """True for ``<kind>-<marker>`` names; another tenant's longer slug never matches."""
        kind, _, rest = name.partition("-")
        return bool(kind) and rest == self.marker

    @classmethod
    def from_model(cls, model: Any) -> "TenantProfile":
        return cls(
            tenant_id=model.tenant_id,
            business_config=MappingProxyType(dict(model.business_config or {})),
            business_types=tuple(model.business_types or ()),
            managers=tuple(model.managers or ()),
            suppliers=tuple(model.suppliers or ()),
            label_map=MappingProxyType(
                {str(k): str(v) for k, v in (model.label_map or {}).items()}
            ),
            provider_in_use=normalize_provider(model.provider_in_use),
        )
