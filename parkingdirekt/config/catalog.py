"""Known platform settings: fallback defaults, storage types and validation rules."""
import re
from typing import Any, Literal

ConfigType = Literal["string", "number", "boolean", "json"]

SECRET_MASK = "••••••••"

CONFIG_CATEGORIES = (
    "financial",
    "automation",
    "platform",
    "email",
    "api",
    "feature",
    "integrations",
)

RATE_LIMIT_MODES = ("per_user", "per_ip", "global")

# key -> (category, value, type, description)
DEFAULT_SETTINGS: dict[str, tuple[str, Any, ConfigType, str]] = {
    # Financial
    "platformCommissionPercent": ("financial", 10.0, "number", "Platform commission percentage"),
    "serviceFeePercent": ("financial", 2.5, "number", "Service fee percentage"),
    "minimumPayoutThreshold": ("financial", 50.00, "number", "Minimum payout amount"),
    "defaultCurrency": ("financial", "EUR", "string", "Default currency"),
    # Automation
    "gracePeriod": ("automation", 10, "number", "Minutes before overstay charges"),
    "overstayRateMultiplier": ("automation", 1.25, "number", "Overstay rate multiplier"),
    "bookingBuffer": ("automation", 5, "number", "Minutes gap between bookings"),
    "maxOverstayMinutes": ("automation", 120, "number", "Maximum overstay duration"),
    "enableAutoBilling": ("automation", True, "boolean", "Enable automatic billing"),
    # Platform
    "maintenanceMode": ("platform", False, "boolean", "Enable maintenance mode"),
    "maintenanceMessage": ("platform", "System under maintenance", "string", "Maintenance mode message"),
    "disableNewRegistrations": ("platform", False, "boolean", "Disable user registrations"),
    # Email
    "defaultFromEmail": ("email", "noreply@parkingdirekt.com", "string", "Default from email address"),
    "supportEmail": ("email", "support@parkingdirekt.com", "string", "Support email address"),
    "enablePushNotifications": ("email", True, "boolean", "Enable push notifications"),
    "notificationRetryLimit": ("email", 3, "number", "Max retry attempts"),
    "emailProvider": ("email", "smtp", "string", "Default email provider"),
    # API
    "enableRateLimiting": ("api", True, "boolean", "Enable API rate limiting"),
    "maxRequestsPerMinute": ("api", 60, "number", "Max requests per minute"),
    "rateLimitMode": ("api", "per_user", "string", "Rate limiting mode"),
    # Feature
    "newDashboardEnabled": ("feature", True, "boolean", "Enable new dashboard"),
    "betaFeaturesEnabled": ("feature", False, "boolean", "Enable beta features"),
}

_SECRET_KEY_MARKERS = ("apikey", "secretkey", "password", "token")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def default_entries(category: str | None = None) -> dict[str, dict[str, Any]]:
    """
    Build fallback config entries, optionally limited to one category.

    The shape matches what the config store returns for stored rows.
    """
    entries: dict[str, dict[str, Any]] = {}
    for key, (entry_category, value, value_type, description) in DEFAULT_SETTINGS.items():
        if category and entry_category != category:
            continue
        entries[key] = {
            "value": value,
            "type": value_type,
            "category": entry_category,
            "description": description,
            "is_secret": False,
            "updated_at": None,
        }
    return entries


def setting_type(key: str, value: Any = None) -> ConfigType:
    """Storage type for a setting key, inferred from the value for unknown keys."""
    if key in DEFAULT_SETTINGS:
        return DEFAULT_SETTINGS[key][2]
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (dict, list)):
        return "json"
    return "string"


def setting_description(category: str, key: str) -> str:
    if key in DEFAULT_SETTINGS:
        return DEFAULT_SETTINGS[key][3]
    return f"{category} setting: {key}"


def is_secret_setting(key: str) -> bool:
    """Keys mentioning API keys, secret keys, passwords or tokens are stored as secrets."""
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_KEY_MARKERS)


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _check_range(
    settings: dict[str, Any],
    key: str,
    low: float,
    high: float | None,
    message: str,
    errors: list[str],
    integer: bool = False,
) -> None:
    if key not in settings:
        return
    value = _as_int(settings[key]) if integer else _as_float(settings[key])
    if value is None or value < low or (high is not None and value > high):
        errors.append(message)


def validate_settings(category: str, settings: dict[str, Any]) -> list[str]:
    """
    Validate a settings batch for a control-center category.

    Args:
        category: Config category being written
        settings: Mapping of setting key to new value

    Returns:
        List of validation messages (empty when the batch is valid)
    """
    errors: list[str] = []

    if category == "financial":
        _check_range(settings, "platformCommissionPercent", 0, 50,
                     "platformCommissionPercent must be between 0 and 50", errors)
        _check_range(settings, "serviceFeePercent", 0, 10,
                     "serviceFeePercent must be between 0 and 10", errors)
        _check_range(settings, "minimumPayoutThreshold", 10, None,
                     "minimumPayoutThreshold must be at least 10.00", errors)
    elif category == "automation":
        _check_range(settings, "gracePeriod", 0, 60,
                     "gracePeriod must be between 0 and 60 minutes", errors, integer=True)
        _check_range(settings, "overstayRateMultiplier", 1.0, 10.0,
                     "overstayRateMultiplier must be between 1.0 and 10.0", errors)
        _check_range(settings, "bookingBuffer", 0, 60,
                     "bookingBuffer must be between 0 and 60 minutes", errors, integer=True)
    elif category == "email":
        if "defaultFromEmail" in settings:
            if not _EMAIL_RE.match(str(settings["defaultFromEmail"])):
                errors.append("defaultFromEmail must be a valid email address")
        _check_range(settings, "notificationRetryLimit", 1, 10,
                     "notificationRetryLimit must be between 1 and 10", errors, integer=True)
    elif category == "api":
        _check_range(settings, "maxRequestsPerMinute", 1, 1000,
                     "maxRequestsPerMinute must be between 1 and 1000", errors, integer=True)
        if "rateLimitMode" in settings and settings["rateLimitMode"] not in RATE_LIMIT_MODES:
            errors.append("rateLimitMode must be one of: per_user, per_ip, global")

    return errors
