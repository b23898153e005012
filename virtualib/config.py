from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the project directory (parent of the virtualib package)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"

class Settings(BaseSettings):
    # Server settings (non-confidential, can have defaults)
    host: str = "0.0.0.0"
    port: int = 3000
    api_prefix: str = "/api"
    cors_origins: str = "*"  # Comma separated list of allowed origins
    log_level: str = "INFO"
    timezone: str = "UTC"

    # HTTPS/SSL settings for uvicorn
    ssl_enabled: bool = False
    ssl_certfile: Optional[str] = None
    ssl_keyfile: Optional[str] = None

    # Database settings - either a full URL or the discrete fields below
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None  # Confidential - no default
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # Database SSL settings (PostgreSQL only)
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full
    db_ssl_cert: Optional[str] = None
    db_ssl_key: Optional[str] = None
    db_ssl_root_cert: Optional[str] = None

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 10080  # 7 days
    bcrypt_rounds: int = 12

    # Lending rules
    default_overdue_days: int = 14
    allow_requests_on_loaned_books: bool = True

    # Book summary generation (OpenAI compatible chat completions API)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    openai_base_url: str = "https://api.openai.com/v1"
    summarizer_timeout: float = 15.0

    # Outbound email
    email_timeout: float = 10.0
    gmail_api_base_url: str = "https://gmail.googleapis.com"
    google_token_url: str = "https://oauth2.googleapis.com/token"

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

    @property
    def cors_origin_list(self):
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

settings = Settings()
