import os
import logging
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Settings(BaseModel):
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    token_ttl_days: int = 30
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "tutordesk"
    s3_bucket: str = ""
    s3_prefix: str = "tutordesk/"
    s3_base_url: str = ""
    upload_dir: str = "uploads"
    environment: str = Field("development", description="development|production")
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    max_document_bytes: int = 10 * 1024 * 1024
    max_image_bytes: int = 5 * 1024 * 1024

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_settings() -> Settings:
    """Read .env and the process environment once, at startup."""
    load_dotenv()
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change-me"),
        jwt_algorithm=os.getenv("JWT_ALG", "HS256"),
        token_ttl_days=int(os.getenv("TOKEN_TTL_DAYS", "30")),
        database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "tutordesk"),
        s3_bucket=os.getenv("S3_BUCKET", ""),
        s3_prefix=os.getenv("S3_PREFIX", "tutordesk/"),
        s3_base_url=os.getenv("S3_BASE_URL", ""),
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        environment=os.getenv("APP_ENV", "development"),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        max_document_bytes=int(os.getenv("MAX_DOCUMENT_BYTES", str(10 * 1024 * 1024))),
        max_image_bytes=int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024))),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s",
        handlers=[logging.StreamHandler()],
    )
