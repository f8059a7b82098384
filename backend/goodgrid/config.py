from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "goodgrid-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "GoodGrid")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/goodgrid_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Background jobs (RQ)
    rq_queue_name: str = os.getenv("RQ_QUEUE_NAME", "verification")
    rq_job_timeout_seconds: int = int(os.getenv("RQ_JOB_TIMEOUT_SECONDS", "120"))
    stranded_grace_minutes: int = int(os.getenv("STRANDED_GRACE_MINUTES", "15"))

    # External collaborators
    verification_service_url: str = os.getenv("VERIFICATION_SERVICE_URL", "http://verifier:8080")
    verification_timeout_seconds: float = float(os.getenv("VERIFICATION_TIMEOUT_SECONDS", "30"))
    payment_service_url: str = os.getenv("PAYMENT_SERVICE_URL", "")  # empty => payouts disabled
    payment_timeout_seconds: float = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "15"))
    notifications_channel: str = os.getenv("NOTIFICATIONS_CHANNEL", "goodgrid:notifications")
    notifications_mode: str = os.getenv("NOTIFICATIONS_MODE", "redis")  # redis|log

settings = Settings()
