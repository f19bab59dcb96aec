# =============================================================================
# Prompt Configuration - Read-Only View of prompt-config.json
# =============================================================================
#
# The file is maintained by an external editor. This service only reads:
#
#   systemPrompt    → base system prompt (built-in default when blank)
#   referenceInfo   → "own company" reference block for every answer
#   companyProfile  → free-form object, passed through unchanged
#
# A missing or malformed file logs and yields the defaults.
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class PromptConfig:
    system_prompt: str
    reference_info: str = ""
    company_profile: dict = field(default_factory=dict)


def load_prompt_config(path: str | Path | None = None) -> PromptConfig:
    """Load the prompt configuration, falling back to defaults on any problem."""
    config_path = Path(path or settings.prompt_config_path)
    defaults = PromptConfig(system_prompt=settings.default_system_prompt)

    if not config_path.exists():
        return defaults

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Error loading system prompt config: %s", exc)
        return defaults

    if not isinstance(data, dict):
        logger.error("Prompt config %s is not a JSON object; using defaults", config_path)
        return defaults

    system_prompt = data.get("systemPrompt")
    reference_info = data.get("referenceInfo")
    profile = data.get("companyProfile")
    if not isinstance(system_prompt, str) or not system_prompt:
        system_prompt = defaults.system_prompt
    return PromptConfig(
        system_prompt=system_prompt,
        reference_info=reference_info if isinstance(reference_info, str) else "",
        company_profile=profile if isinstance(profile, dict) else {},
    )
