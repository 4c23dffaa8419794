"""Control Center models: flags, configuration, integrations and operational logs."""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from parkingdirekt.db.models.base import Base, new_id
from parkingdirekt.utils.clock import utcnow


class FeatureFlag(Base):
    """Feature flag with percentage rollout and optional targeting rules."""

    __tablename__ = "feature_flags"
    __table_args__ = (
        UniqueConstraint("key", "environment", name="uq_feature_flags_key_environment"),
        CheckConstraint(
            "rollout_percentage >= 0 AND rollout_percentage <= 100",
            name="ck_feature_flags_rollout_range",
        ),
        Index("idx_feature_flags_environment", "environment"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    key = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=False)
    rollout_percentage = Column(Integer, nullable=False, default=100)
    # Serialized rule tree (JSON text) or NULL
    conditions = Column(Text, nullable=True)
    environment = Column(String(20), nullable=False, default="production")
    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<FeatureFlag(key={self.key}, "
            f"environment={self.environment}, "
            f"enabled={self.enabled}, "
            f"rollout={self.rollout_percentage})>"
        )


class SystemConfig(Base):
    """Typed configuration value scoped by category and environment."""

    __tablename__ = "system_config"
    __table_args__ = (
        UniqueConstraint("category", "key", "environment", name="uq_system_config_category_key_env"),
        Index("idx_system_config_environment", "environment"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    category = Column(String(50), nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="string")
    is_secret = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    environment = Column(String(20), nullable=False, default="production")
    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SystemConfig(category={self.category}, "
            f"key={self.key}, "
            f"environment={self.environment}, "
            f"type={self.type})>"
        )


class IntegrationSetting(Base):
    """Credential for an outbound integration, encrypted at rest."""

    __tablename__ = "integration_settings"
    __table_args__ = (
        UniqueConstraint("name", "key", "environment", name="uq_integration_settings_name_key_env"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    environment = Column(String(20), nullable=False, default="production")
    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<IntegrationSetting(name={self.name}, "
            f"key={self.key}, "
            f"environment={self.environment}, "
            f"is_active={self.is_active})>"
        )


class EmailDeliveryLog(Base):
    """One row per logical email send, updated as attempts resolve."""

    __tablename__ = "email_delivery_logs"
    __table_args__ = (
        Index("idx_email_delivery_logs_status", "status"),
        Index("idx_email_delivery_logs_created_at", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    recipients = Column(Text, nullable=False)
    subject = Column(String(500), nullable=False)
    provider = Column(String(50), nullable=False)
    # pending, sent, delivered, failed, retrying
    status = Column(String(20), nullable=False, default="pending")
    message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    metadata_json = Column("metadata", Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<EmailDeliveryLog(id={self.id}, "
            f"provider={self.provider}, "
            f"status={self.status})>"
        )


class EmailRetryItem(Base):
    """Durable retry queue entry for a failed email."""

    __tablename__ = "email_retry_queue"
    __table_args__ = (
        Index("idx_email_retry_queue_due", "status", "next_retry_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    delivery_log_id = Column(String(36), nullable=True)
    # Serialized EmailMessage
    payload = Column(Text, nullable=False)
    provider = Column(String(50), nullable=False)
    attempt = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    next_retry_at = Column(DateTime, nullable=False, default=utcnow)
    # pending, processing, completed, failed; updated_at marks the claim time
    status = Column(String(20), nullable=False, default="pending")
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<EmailRetryItem(id={self.id}, "
            f"attempt={self.attempt}, "
            f"status={self.status})>"
        )


class ApiRateLimitLog(Base):
    """Rate limit violation record."""

    __tablename__ = "api_rate_limit_logs"
    __table_args__ = (
        Index("idx_api_rate_limit_logs_created_at", "created_at"),
        Index("idx_api_rate_limit_logs_identifier", "identifier"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    identifier = Column(String(255), nullable=False)
    endpoint = Column(String(255), nullable=True)
    method = Column(String(10), nullable=True)
    status_code = Column(Integer, nullable=False, default=429)
    blocked = Column(Boolean, nullable=False, default=True)
    limit_type = Column(String(20), nullable=False, default="per_user")
    request_count = Column(Integer, nullable=False)
    window_start = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ApiRateLimitLog(identifier={self.identifier}, "
            f"endpoint={self.endpoint}, "
            f"request_count={self.request_count})>"
        )


class AdminAuditLog(Base):
    """Record of an administrative change."""

    __tablename__ = "admin_audit_logs"
    __table_args__ = (
        Index("idx_admin_audit_logs_created_at", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    admin_id = Column(String(36), nullable=False)
    action = Column(String(50), nullable=False)
    category = Column(String(50), nullable=False)
    target = Column(String(255), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    environment = Column(String(20), nullable=False, default="production")
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<AdminAuditLog(action={self.action}, "
            f"target={self.target}, "
            f"admin_id={self.admin_id})>"
        )
