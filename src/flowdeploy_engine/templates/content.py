"""Business content for workflow templates: classifier and reply prompts."""

from typing import Protocol

from flowdeploy_engine.tenants.schemas import TenantProfile

DEFAULT_CATEGORIES = ("URGENT", "SALES", "SUPPORT", "MANAGER", "SUPPLIERS", "BILLING", "MISC")


class ContentGenerator(Protocol):
    """Produces the natural-language prompts bound into a tenant's workflow."""

    def classifier_prompt(self, profile: TenantProfile) -> str: ...

    def reply_prompt(self, profile: TenantProfile) -> str: ...


def signature_block(profile: TenantProfile) -> str:
    contact = profile.business_config.get("contact") or {}
    phone = contact.get("phone") or profile.business.get("phone") or ""
    return f"Best regards,\nThe {profile.business_name} Team\n{phone}".rstrip()


def service_catalog(profile: TenantProfile) -> str:
    currency = profile.business.get("currency") or "USD"
    lines = []
    for service in profile.business_config.get("services") or []:
        price = service.get("price")
        pricing = f" ({service.get('pricingType', 'fixed')} {price} {currency})" if price else ""
        description = f": {service['description']}" if service.get("description") else ""
        lines.append(f"- {service.get('name', 'Service')}{pricing}{description}")
    return "\n".join(lines)


def managers_text(profile: TenantProfile) -> str:
    return ", ".join(m.get("name", "") for m in profile.managers if m.get("name"))


def suppliers_text(profile: TenantProfile) -> str:
    return ", ".join(s.get("name", "") for s in profile.suppliers if s.get("name"))


class BasicContentGenerator:
    """Deterministic prompt builder used when no richer generator is wired in."""

    def classifier_prompt(self, profile: TenantProfile) -> str:
        categories = list(profile.label_map) or list(DEFAULT_CATEGORIES)
        types = " + ".join(profile.business_types) or "general business"
        lines = [
            f"You are an email classifier for {profile.business_name} ({types}).",
            f"Categorize each email into exactly one of: {', '.join(categories)}.",
            "Return JSON with summary, primary_category, confidence and ai_can_reply fields.",
        ]
        managers = managers_text(profile)
        if managers:
            lines.append(f"Emails addressed to {managers} by name are MANAGER.")
        suppliers = suppliers_text(profile)
        if suppliers:
            lines.append(f"Emails from {suppliers} are SUPPLIERS.")
        domain = profile.business.get("emailDomain")
        if domain:
            lines.append(f"Internal senders use @{domain}.")
        return "\n".join(lines)

    def reply_prompt(self, profile: TenantProfile) -> str:
        rules = profile.business_config.get("rules") or {}
        tone = rules.get("tone") or "Professional, friendly, and helpful"
        pricing = (
            "You may discuss pricing and provide estimates when asked."
            if rules.get("allowPricing")
            else "Do not discuss pricing. Direct customers to request a formal quote."
        )
        parts = [
            f"You are drafting email replies for {profile.business_name}.",
            f"Tone: {tone}.",
            "Acknowledge the request, give helpful information and end with a clear next step.",
            pricing,
        ]
        catalog = service_catalog(profile)
        if catalog:
            parts.append(f"Services:\n{catalog}")
        if rules.get("escalationRules"):
            parts.append(f"Escalation: {rules['escalationRules']}")
        parts.append(f"Signature:\n{signature_block(profile)}")
        return "\n\n".join(parts)
