"""
Application configuration.
Values come from the environment (optionally a .env file) and are frozen into
a Settings object that the app factory hands to every component.
"""

import os
import secrets
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    # ─── Storage ───────────────────────────────────────────────────────────────
    database_url: str = "sqlite:///./portal.db"
    in_query_batch_size: int = 30

    # ─── Auth ──────────────────────────────────────────────────────────────────
    jwt_secret: str = field(default_factory=lambda: secrets.token_hex(32))
    jwt_algorithm: str = "HS256"
    credential_ttl_days: int = 30
    session_cache_backend: str = "local"  # local | redis
    session_cache_ttl: int = 300  # seconds; 0 = keep until restart
    redis_url: str = "redis://localhost:6379/0"
    password_reset_ttl_minutes: int = 60

    # ─── Read cache TTLs (seconds) ─────────────────────────────────────────────
    ttl_subjects: int = 60
    ttl_units: int = 60
    ttl_materials: int = 60
    ttl_semester_stats: int = 120
    ttl_quizzes: int = 30
    ttl_students: int = 60

    # ─── Collaborators ─────────────────────────────────────────────────────────
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_email: str = ""
    smtp_password: str = ""
    push_gateway_url: str = ""
    push_gateway_key: str = ""
    public_base_url: str = "http://localhost:5173"

    # ─── Bootstrap ─────────────────────────────────────────────────────────────
    admin_email: str = "admin@portal.edu"
    admin_password: str = "admin123"
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Build Settings from the current environment."""
    jwt_secret = os.getenv("JWT_SECRET") or os.getenv("SESSION_SECRET") or secrets.token_hex(32)
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./portal.db"),
        in_query_batch_size=_int_env("IN_QUERY_BATCH_SIZE", 30),
        jwt_secret=jwt_secret,
        credential_ttl_days=_int_env("CREDENTIAL_TTL_DAYS", 30),
        session_cache_backend=os.getenv("SESSION_CACHE_BACKEND", "local").lower(),
        session_cache_ttl=_int_env("SESSION_CACHE_TTL", 300),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        password_reset_ttl_minutes=_int_env("PASSWORD_RESET_TTL_MINUTES", 60),
        ttl_subjects=_int_env("TTL_SUBJECTS", 60),
        ttl_units=_int_env("TTL_UNITS", 60),
        ttl_materials=_int_env("TTL_MATERIALS", 60),
        ttl_semester_stats=_int_env("TTL_SEMESTER_STATS", 120),
        ttl_quizzes=_int_env("TTL_QUIZZES", 30),
        ttl_students=_int_env("TTL_STUDENTS", 60),
        smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=_int_env("SMTP_PORT", 587),
        smtp_email=os.getenv("SMTP_EMAIL", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        push_gateway_url=os.getenv("PUSH_GATEWAY_URL", ""),
        push_gateway_key=os.getenv("PUSH_GATEWAY_KEY", ""),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:5173"),
        admin_email=os.getenv("ADMIN_EMAIL", "admin@portal.edu"),
        admin_password=os.getenv("ADMIN_PASSWORD", "admin123"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
