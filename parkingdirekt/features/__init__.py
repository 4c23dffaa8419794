"""Feature flags module."""
from parkingdirekt.features.models import (
    FeatureFlagCreate,
    FeatureFlagView,
    FlagUsageStats,
)
from parkingdirekt.features.service import FeatureFlagService

__all__ = [
    "FeatureFlagService",
    "FeatureFlagCreate",
    "FeatureFlagView",
    "FlagUsageStats",
]
