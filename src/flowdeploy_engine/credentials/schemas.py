"""Credential types and resolution results."""

from dataclasses import dataclass
from typing import Optional

# Remote engine credential types per provider.
CREDENTIAL_TYPES = {
    "gmail": "gmailOAuth2",
    "outlook": "microsoftOutlookOAuth2Api",
    "openai": "openAiApi",
}

MAILBOX_NODE_TYPES = {
    "gmail": ("n8n-nodes-base.gmail", "n8n-nodes-base.gmailTrigger"),
    "outlook": ("n8n-nodes-base.microsoftOutlook", "n8n-nodes-base.microsoftOutlookTrigger"),
}


@dataclass(frozen=True)
class ResolvedCredentials:
    """Remote credential ids bound into a tenant's workflow."""

    provider: str
    mailbox_id: str
    llm_id: str
    datastore_id: str

    @property
    def gmail_id(self) -> Optional[str]:
        return self.mailbox_id if self.provider == "gmail" else None

    @property
    def outlook_id(self) -> Optional[str]:
        return self.mailbox_id if self.provider == "outlook" else None

    def as_map(self) -> dict[str, str]:
        return {
            self.provider: self.mailbox_id,
            "openai": self.llm_id,
            "datastore": self.datastore_id,
        }


@dataclass
class TokenSet:
    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
