import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'SMS Manager'
    app_env: str = 'production'
    app_timezone: str = 'Asia/Kuwait'
    database_url: str = 'sqlite:///./sms_manager.db'
    sms_config_file: str = 'config/sms-manager.json'
    log_level: str = 'INFO'
    http_timeout_seconds: float = 60.0
    enable_scheduler: bool = True
    cleanup_interval_hours: int = 24
    cleanup_initial_delay_seconds: int = 300
    security_require_https: bool = True
    security_block_private_networks: bool = True
    security_allow_redirects: bool = False
    security_allowed_ports: list[int] = [443]
    security_allowed_api_hosts: list[str] = []
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()


def resolve_env(value):
    """Expand a `$NAME` reference from the process environment; other values pass through."""
    if isinstance(value, str) and value.startswith('$') and len(value) > 1:
        return os.environ.get(value[1:], '')
    return value
