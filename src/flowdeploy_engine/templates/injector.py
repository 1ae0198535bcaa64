"""TemplateInjector — turns a tenant-agnostic template into a deployable workflow.

Substitution runs on the serialized JSON text, so every value is escaped
for a JSON string context before it is spliced in. The result must parse
and keep the template's node/connection topology.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from flowdeploy_engine.common.exceptions import InjectionError
from flowdeploy_engine.credentials.schemas import (
    CREDENTIAL_TYPES,
    MAILBOX_NODE_TYPES,
    ResolvedCredentials,
)
from flowdeploy_engine.templates.content import (
    BasicContentGenerator,
    ContentGenerator,
    managers_text,
    service_catalog,
    signature_block,
)
from flowdeploy_engine.templates.loader import load_template
from flowdeploy_engine.tenants.schemas import TenantProfile

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"<<<([A-Z0-9_]+)>>>")

LLM_NODE_TYPES = ("@n8n/n8n-nodes-langchain.lmChatOpenAi",)
DATASTORE_NODE_TYPES = ("n8n-nodes-base.supabase",)
DATASTORE_CREDENTIAL_TYPE = "supabaseApi"


def token(name: str) -> str:
    return f"<<<{name}>>>"


def label_placeholder(category: str) -> str:
    """``"Sales / Leads"`` -> ``<<<LABEL_SALES_LEADS_ID>>>``."""
    name = re.sub(r"[^A-Z0-9]+", "_", str(category).upper()).strip("_")
    return token(f"LABEL_{name}_ID")


def escape_json_string(value: Any) -> str:
    """Render a value as the inside of a JSON string literal."""
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = value
    elif isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (dict, list, tuple)):
        text = json.dumps(value)
    else:
        text = str(value)
    return json.dumps(text)[1:-1]


def topology(document: Mapping[str, Any]) -> tuple[int, frozenset]:
    """Node count plus the connection graph expressed in node indices."""
    nodes = document.get("nodes") or []
    index = {node.get("name"): i for i, node in enumerate(nodes)}
    edges = set()
    for source, outputs in (document.get("connections") or {}).items():
        for kind, branches in (outputs or {}).items():
            for branch_no, targets in enumerate(branches or []):
                for target in targets or []:
                    edges.add(
                        (
                            index.get(source, source),
                            kind,
                            branch_no,
                            index.get(target.get("node"), target.get("node")),
                            target.get("type"),
                            target.get("index", 0),
                        )
                    )
    return len(nodes), frozenset(edges)


@dataclass(frozen=True)
class InjectionContext:
    """Everything that varies per tenant in a rendered workflow."""

    profile: TenantProfile
    credentials: ResolvedCredentials
    classifier_prompt: str = ""
    reply_prompt: str = ""
    classifier_model: str = "gpt-4o-mini"
    draft_model: str = "gpt-4o-mini"


class TemplateInjector:
    """Renders a provider template for one tenant."""

    def __init__(
        self,
        content: Optional[ContentGenerator] = None,
        classifier_model: str = "gpt-4o-mini",
        draft_model: str = "gpt-4o-mini",
        template_dir: Optional[str] = None,
    ):
        self.content = content or BasicContentGenerator()
        self.classifier_model = classifier_model
        self.draft_model = draft_model
        self.template_dir = template_dir or None

    def render(self, profile: TenantProfile, credentials: ResolvedCredentials) -> dict[str, Any]:
        """Load, inject and bind the template; return the engine payload."""
        context = InjectionContext(
            profile=profile,
            credentials=credentials,
            classifier_prompt=self.content.classifier_prompt(profile),
            reply_prompt=self.content.reply_prompt(profile),
            classifier_model=self.classifier_model,
            draft_model=self.draft_model,
        )
        template = load_template(credentials.provider, self.template_dir)
        document = self.inject(template, context)
        self.bind_credentials(document, credentials, profile)
        return self.build_payload(document, profile.workflow_name)

    def build_replacements(self, context: InjectionContext) -> dict[str, str]:
        profile = context.profile
        business = profile.business
        rules = profile.business_config.get("rules") or {}
        creds = context.credentials

        values: dict[str, Any] = {
            "BUSINESS_NAME": profile.business_name,
            "CLIENT_ID": profile.tenant_id,
            "USER_ID": profile.tenant_id,
            "EMAIL_DOMAIN": business.get("emailDomain") or "",
            "CURRENCY": business.get("currency") or "USD",
            "BUSINESS_PHONE": business.get("phone") or "",
            "WEBSITE_URL": business.get("websiteUrl") or "",
            "TIMEZONE": business.get("timezone") or "",
            "AI_BUSINESS_TYPES": " + ".join(profile.business_types),
            "MANAGERS_TEXT": managers_text(profile),
            "SUPPLIERS": [
                {"name": s.get("name", ""), "email": s.get("email", "")} for s in profile.suppliers
            ],
            "LABEL_MAP": dict(profile.label_map),
            "SIGNATURE_BLOCK": signature_block(profile),
            "SERVICE_CATALOG_TEXT": service_catalog(profile),
            "REPLY_TONE": rules.get("tone") or "Professional, friendly, and helpful",
            "ALLOW_PRICING": bool(rules.get("allowPricing", False)),
            "ESCALATION_RULE": rules.get("escalationRules") or "",
            "AI_SYSTEM_MESSAGE": context.classifier_prompt,
            "BEHAVIOR_REPLY_PROMPT": context.reply_prompt,
            "AI_CLASSIFIER_MODEL": context.classifier_model,
            "AI_DRAFT_MODEL": context.draft_model,
            "CLIENT_GMAIL_CRED_ID": creds.gmail_id,
            "CLIENT_OUTLOOK_CRED_ID": creds.outlook_id,
            "CLIENT_OPENAI_CRED_ID": creds.llm_id,
            "CLIENT_SUPABASE_CRED_ID": creds.datastore_id,
        }
        replacements = {token(name): escape_json_string(v) for name, v in values.items()}
        for category, label_id in profile.label_map.items():
            replacements[label_placeholder(category)] = escape_json_string(label_id)
        return replacements

    def inject(self, template: Mapping[str, Any], context: InjectionContext) -> dict[str, Any]:
        """Substitute every placeholder and parse the result back.

        Raises InjectionError when the result is not valid JSON or its
        topology differs from the template's.
        """
        replacements = self.build_replacements(context)
        unresolved: set[str] = set()

        def substitute(match: re.Match) -> str:
            value = replacements.get(match.group(0))
            if value is None:
                unresolved.add(match.group(1))
                return ""
            return value

        # One pass: substituted values are never rescanned for placeholders.
        text = PLACEHOLDER_RE.sub(substitute, json.dumps(template))
        if unresolved:
            logger.warning(
                "Unresolved placeholders replaced with empty string: %s",
                ", ".join(sorted(unresolved)),
                extra={"tenant_id": context.profile.tenant_id},
            )

        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InjectionError(f"Injected workflow is not valid JSON: {exc}") from exc

        if topology(document) != topology(template):
            raise InjectionError("Injected workflow topology differs from the template")
        return document

    def bind_credentials(
        self,
        document: dict[str, Any],
        credentials: ResolvedCredentials,
        profile: TenantProfile,
    ) -> dict[str, Any]:
        """Point mailbox, LLM and datastore nodes at the resolved credentials."""
        provider = credentials.provider
        bindings = []
        for types, cred_type, cred_id, cred_name in (
            (
                MAILBOX_NODE_TYPES[provider],
                CREDENTIAL_TYPES[provider],
                credentials.mailbox_id,
                profile.credential_name(provider),
            ),
            (LLM_NODE_TYPES, CREDENTIAL_TYPES["openai"], credentials.llm_id, "OpenAI"),
            (
                DATASTORE_NODE_TYPES,
                DATASTORE_CREDENTIAL_TYPE,
                credentials.datastore_id,
                "Datastore",
            ),
        ):
            bindings.append((frozenset(types), cred_type, {"id": cred_id, "name": cred_name}))

        for node in document.get("nodes") or []:
            for types, cred_type, ref in bindings:
                if node.get("type") in types:
                    node.setdefault("credentials", {})[cred_type] = dict(ref)
        return document

    @staticmethod
    def build_payload(document: Mapping[str, Any], name: str) -> dict[str, Any]:
        """Strip the document to the fields the engine accepts on create/update."""
        return {
            "name": name,
            "nodes": document.get("nodes") or [],
            "connections": document.get("connections") or {},
            "settings": {"executionOrder": "v1"},
        }
