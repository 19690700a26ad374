# tenantdesk/core/config.py
from typing import List, Union, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    # ==== Infrastructure ====
    database_url: str = "postgresql+asyncpg://app:app@db:5432/tenantdesk"
    redis_url: str = "redis://redis:6379/0"
    # create tables on startup (local sqlite runs, no alembic)
    auto_create_tables: bool = False

    # ==== Security / Auth ====
    jwt_secret: str = "changeme"
    jwt_alg: str = "HS256"

    # plain login, minutes
    jwt_expires_min: int = 60

    # "remember me" session, minutes (~30 days)
    jwt_remember_expires_min: int = 60 * 24 * 30

    # ==== CORS ====
    # CORS_ORIGINS=http://localhost:5173,http://127.0.0.1:5173,...
    cors_origins: Union[str, List[str]] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # ==== Signup policy ====
    allow_self_signup: bool = True

    # ==== Bootstrap admin / demo data ====
    admin_email: str = "admin@example.com"
    admin_password: str = "ChangeMe123!"
    admin_first_name: str = "Admin"
    admin_last_name: str = "User"
    create_demo_company: bool = True

    # ==== Notifications ====
    notifications_queue: str = "notifications"
    # push outbox rows to RQ after commit; off in tests
    notifications_enqueue: bool = True
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None

    # ==== Tickets ====
    ticket_number_prefix: str = "TICKET-"
    ticket_number_width: int = 6
    sla_default_target_hours: int = 24
    # resolved/closed tickets report is_breached=False even if they breached while active
    sla_forgive_on_close: bool = True

    # ==== Attachments (local blob store) ====
    upload_dir: str = "uploads"
    attachment_max_bytes: int = 2 * 1024 * 1024

    # ==== Logging / Environment ====
    env: str = "dev"          # dev|staging|prod
    log_level: str = "INFO"   # DEBUG|INFO|WARNING|ERROR

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                try:
                    import json
                    parsed = json.loads(s)
                    return [str(i).strip() for i in parsed if str(i).strip()]
                except ValueError:
                    pass
            return [i.strip() for i in s.split(",") if i.strip()]
        return v


settings = Settings()
