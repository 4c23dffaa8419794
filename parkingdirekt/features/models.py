"""Pydantic models for feature flags."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

FLAG_KEY_PATTERN = r"^[a-zA-Z0-9_.\-]+$"


class FeatureFlagView(BaseModel):
    """Feature flag definition as returned by the API."""

    key: str
    name: str
    description: Optional[str] = None
    enabled: bool
    rollout_percentage: int = Field(..., ge=0, le=100)
    conditions: Optional[dict[str, Any]] = None
    environment: str
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FeatureFlagCreate(BaseModel):
    """Request model for creating a feature flag."""

    flag_key: str = Field(..., min_length=1, max_length=100, pattern=FLAG_KEY_PATTERN)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    enabled: bool = False
    rollout_percentage: int = Field(default=100, ge=0, le=100)
    conditions: Optional[dict[str, Any]] = None
    environment: str = "production"


class FlagToggleRequest(BaseModel):
    flag_key: str = Field(..., min_length=1)
    enabled: bool
    environment: str = "production"


class FlagRolloutRequest(BaseModel):
    flag_key: str = Field(..., min_length=1)
    percentage: int = Field(..., ge=0, le=100)
    environment: str = "production"


class FlagConditionsRequest(BaseModel):
    flag_key: str = Field(..., min_length=1)
    conditions: Optional[dict[str, Any]] = None
    environment: str = "production"


class EmergencyRollbackRequest(BaseModel):
    environment: str = "production"


class FlagUsageStats(BaseModel):
    """Aggregate counts over the flag table."""

    total_flags: int = 0
    active_flags: int = 0
    flags_with_rollout: int = Field(0, description="Enabled or not, flags rolled out to under 100%")
    recent_changes: int = Field(0, description="Flags updated inside the lookback window")
    days: int = 7
