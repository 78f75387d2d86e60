from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_SCREENSHOT_API_URL = "https://api.screenshotone.com/take"
DEFAULT_LOGO_API_URL = "https://img.logo.dev"


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, read once at startup and handed to each component.
    """

    anthropic_api_key: str = ""
    anthropic_api_url: str = DEFAULT_ANTHROPIC_API_URL
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    max_tokens: int = 16000
    google_model: str = "google-gla:gemini-1.5-pro"
    openai_model: str = "openai:gpt-4o"
    screenshot_api_key: str = ""
    screenshot_api_url: str = DEFAULT_SCREENSHOT_API_URL
    logo_api_url: str = DEFAULT_LOGO_API_URL
    logo_api_key: str = ""
    render_dpi: int = 150

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            anthropic_api_key=env.get("ANTHROPIC_API_KEY", "").strip(),
            anthropic_api_url=env.get("ANTHROPIC_API_URL", DEFAULT_ANTHROPIC_API_URL),
            anthropic_model=env.get("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
            max_tokens=int(env.get("ANTHROPIC_MAX_TOKENS", "16000")),
            google_model=env.get("GOOGLE_MODEL", "google-gla:gemini-1.5-pro"),
            openai_model=env.get("OPENAI_MODEL", "openai:gpt-4o"),
            screenshot_api_key=env.get("SCREENSHOT_API_KEY", "").strip(),
            screenshot_api_url=env.get("SCREENSHOT_API_URL", DEFAULT_SCREENSHOT_API_URL),
            logo_api_url=env.get("LOGO_API_URL", DEFAULT_LOGO_API_URL).rstrip("/"),
            logo_api_key=env.get("LOGO_API_KEY", "").strip(),
            render_dpi=int(env.get("RENDER_DPI", "150")),
        )
