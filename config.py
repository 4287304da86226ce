import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "shop"

    # JWT Config
    jwt_secret: str = "dev-secret-change"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    cookie_name: str = "token"
    cookie_secure: bool = False

    resend_api_key: str = ""
    mail_sender: str = "Shop <no-reply@shop.local>"
    public_base_url: str = "http://localhost:8000"

    password_min_length: int = 6
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            database_name=os.getenv("DATABASE_NAME", defaults.database_name),
            jwt_secret=os.getenv("JWT_SECRET", defaults.jwt_secret),
            jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", defaults.jwt_expire_minutes)),
            cookie_secure=os.getenv("ENVIRONMENT", "development") == "production",
            resend_api_key=(os.getenv("RESEND_API_KEY") or "").strip(),
            mail_sender=os.getenv("MAIL_SENDER", defaults.mail_sender),
            public_base_url=os.getenv("PUBLIC_BASE_URL", defaults.public_base_url).rstrip("/"),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
        )
