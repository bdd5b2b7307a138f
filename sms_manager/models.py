from datetime import date, datetime
from enum import Enum
from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sms_manager.db import Base


class LogStatus(str, Enum):
    PENDING = 'pending'
    SENT = 'sent'
    DELIVERED = 'delivered'
    FAILED = 'failed'


class SmsSettings(Base):
    __tablename__ = 'sms_settings'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    plugin_name: Mapped[str] = mapped_column(String(120), default='SMS Manager')
    default_provider_handle: Mapped[str] = mapped_column(String(64), default='')
    default_sender_id_handle: Mapped[str] = mapped_column(String(64), default='')
    enable_analytics: Mapped[bool] = mapped_column(Boolean, default=True)
    analytics_limit: Mapped[int] = mapped_column(Integer, default=1000)
    analytics_retention: Mapped[int] = mapped_column(Integer, default=30)
    auto_trim_analytics: Mapped[bool] = mapped_column(Boolean, default=True)
    enable_logs: Mapped[bool] = mapped_column(Boolean, default=True)
    logs_limit: Mapped[int] = mapped_column(Integer, default=10000)
    logs_retention: Mapped[int] = mapped_column(Integer, default=30)
    auto_trim_logs: Mapped[bool] = mapped_column(Boolean, default=True)
    items_per_page: Mapped[int] = mapped_column(Integer, default=100)
    refresh_interval_secs: Mapped[int] = mapped_column(Integer, default=30)
    log_level: Mapped[str] = mapped_column(String(16), default='error')
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SmsProvider(Base):
    __tablename__ = 'sms_providers'
    __table_args__ = (
        UniqueConstraint('handle', name='uq_sms_providers_handle'),
        Index('ix_sms_providers_enabled_sort', 'enabled', 'sort_order'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    handle: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(120))
    type: Mapped[str] = mapped_column(String(64), index=True)
    description: Mapped[str] = mapped_column(Text, default='')
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    settings_json: Mapped[str] = mapped_column(Text, default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SmsSenderId(Base):
    __tablename__ = 'sms_sender_ids'
    __table_args__ = (
        UniqueConstraint('handle', name='uq_sms_sender_ids_handle'),
        Index('ix_sms_sender_ids_provider_enabled', 'provider_handle', 'enabled'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    handle: Mapped[str] = mapped_column(String(64), index=True)
    provider_handle: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(120))
    sender_value: Mapped[str] = mapped_column(String(64))
    description: Mapped[str] = mapped_column(Text, default='')
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    is_development: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SmsLog(Base):
    __tablename__ = 'sms_logs'
    __table_args__ = (
        Index('ix_sms_logs_status_created', 'status', 'created_at'),
        Index('ix_sms_logs_provider_created', 'provider_handle', 'created_at'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    provider_handle: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    sender_handle: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    recipient: Mapped[str] = mapped_column(String(32), index=True)
    message: Mapped[str] = mapped_column(Text)
    language: Mapped[str] = mapped_column(String(8), default='en')
    message_length: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default=LogStatus.PENDING.value, index=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    provider_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_plugin: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    source_reference_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SmsAnalytics(Base):
    __tablename__ = 'sms_analytics'
    __table_args__ = (
        UniqueConstraint(
            'date', 'provider_handle', 'sender_handle', 'source_plugin',
            name='uq_sms_analytics_bucket',
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    day: Mapped[date] = mapped_column('date', Date, index=True)
    provider_handle: Mapped[str] = mapped_column(String(64), default='')
    sender_handle: Mapped[str] = mapped_column(String(64), default='')
    source_plugin: Mapped[str] = mapped_column(String(120), default='')
    total_sent: Mapped[int] = mapped_column(Integer, default=0)
    total_delivered: Mapped[int] = mapped_column(Integer, default=0)
    total_failed: Mapped[int] = mapped_column(Integer, default=0)
    total_pending: Mapped[int] = mapped_column(Integer, default=0)
    total_characters: Mapped[int] = mapped_column(Integer, default=0)
    total_messages: Mapped[int] = mapped_column(Integer, default=0)
    english_count: Mapped[int] = mapped_column(Integer, default=0)
    arabic_count: Mapped[int] = mapped_column(Integer, default=0)
    other_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SmsJobClaim(Base):
    __tablename__ = 'sms_job_claims'
    __table_args__ = (
        UniqueConstraint('job_key', name='uq_sms_job_claims_job_key'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    job_key: Mapped[str] = mapped_column(String(160))
    job_name: Mapped[str] = mapped_column(String(64), index=True)
    run_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
