"""Workflow template loading."""

import json
import pathlib
from typing import Any, Optional

from flowdeploy_engine.common.exceptions import ConfigurationError
from flowdeploy_engine.tenants.schemas import MAILBOX_PROVIDERS

_DATA_DIR = pathlib.Path(__file__).parent / "data"


def template_path(provider: str, template_dir: Optional[str] = None) -> pathlib.Path:
    if provider not in MAILBOX_PROVIDERS:
        raise ConfigurationError(f"No workflow template for provider {provider!r}")
    base = pathlib.Path(template_dir) if template_dir else _DATA_DIR
    return base / f"{provider}.json"


def load_template(provider: str, template_dir: Optional[str] = None) -> dict[str, Any]:
    """Read the workflow template for a mailbox provider.

    A configured ``template_dir`` overrides the templates shipped with the
    package.
    """
    path = template_path(provider, template_dir)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Workflow template not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Workflow template {path} is not valid JSON: {exc}") from exc
    if not isinstance(document.get("nodes"), list) or not isinstance(
        document.get("connections"), dict
    ):
        raise ConfigurationError(f"Workflow template {path} has no nodes/connections")
    return document
