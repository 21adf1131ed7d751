"""
Configuration for SideQuest.

Settings are read from a secrets mapping (``st.secrets`` in the app). Store
and Datadog credentials sit at the top level; tuning knobs live in an
optional ``[sidequest]`` table.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sidequest.errors import ConfigurationError


class CompletionPolicy(str, Enum):
    """Who may complete a quest on behalf of its team."""

    QUEST_WIDE = "quest_wide"      # anyone, the whole team completes together
    MEMBERS_ONLY = "members_only"  # only a user whose active quest it is


@dataclass(frozen=True)
class Settings:
    google_sheets_id: str | None = None
    gcp_service_account: Mapping[str, Any] | None = None
    datadog_api_key: str | None = None
    completion_policy: CompletionPolicy = CompletionPolicy.QUEST_WIDE
    sweep_interval_seconds: float = 300
    catalog_grace_hours: float = 2
    expiry_hours: float = 24
    quest_match_threshold: float = 70
    teammate_threshold: float = 70
    teammate_limit: int = 2
    recommendation_limit: int = 6
    seed_demo_data: bool = False

    @property
    def uses_sheets(self) -> bool:
        return bool(self.google_sheets_id and self.gcp_service_account)


def _number(options: Mapping[str, Any], key: str, default: float, minimum: float = 0) -> float:
    value = options.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Setting '{key}' must be a number (got {value!r})") from e
    if number < minimum:
        raise ConfigurationError(f"Setting '{key}' must be at least {minimum} (got {number})")
    return number


def load_settings(secrets: Mapping[str, Any]) -> Settings:
    """
    Build Settings from a secrets mapping.

    Args:
        secrets: Mapping shaped like ``.streamlit/secrets.toml``

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If a value is missing its pair or out of range

    Example secrets.toml::

        google_sheets_id = "1AbC..."
        datadog_api_key = "..."

        [gcp_service_account]
        type = "service_account"
        ...

        [sidequest]
        completion_policy = "members_only"
        sweep_interval_seconds = 60
    """
    sheets_id = secrets.get("google_sheets_id") or None
    service_account = secrets.get("gcp_service_account") or None
    if bool(sheets_id) != bool(service_account):
        raise ConfigurationError(
            "google_sheets_id and gcp_service_account must be configured together"
        )

    options = secrets.get("sidequest") or {}

    policy_value = options.get("completion_policy", CompletionPolicy.QUEST_WIDE.value)
    try:
        policy = CompletionPolicy(policy_value)
    except ValueError as e:
        choices = ", ".join(p.value for p in CompletionPolicy)
        raise ConfigurationError(
            f"Setting 'completion_policy' must be one of {choices} (got {policy_value!r})"
        ) from e

    return Settings(
        google_sheets_id=sheets_id,
        gcp_service_account=service_account,
        datadog_api_key=secrets.get("datadog_api_key") or None,
        completion_policy=policy,
        sweep_interval_seconds=_number(options, "sweep_interval_seconds", 300, minimum=1),
        catalog_grace_hours=_number(options, "catalog_grace_hours", 2),
        expiry_hours=_number(options, "expiry_hours", 24),
        quest_match_threshold=_number(options, "quest_match_threshold", 70),
        teammate_threshold=_number(options, "teammate_threshold", 70),
        teammate_limit=int(_number(options, "teammate_limit", 2, minimum=1)),
        recommendation_limit=int(_number(options, "recommendation_limit", 6, minimum=1)),
        seed_demo_data=bool(options.get("seed_demo_data", False)),
    )
