# paygate/core/config.py
from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "x402 Payment Gate"

    # Payment gate
    X402_ENABLED: bool = True
    X402_PAY_TO_ADDRESS: Optional[str] = None

    # Route options: JSON file mapping path -> option or list of options
    X402_ROUTES_FILE: Optional[str] = None

    # Facilitator: either one binding for every network...
    X402_FACILITATOR_URL: Optional[str] = None
    X402_FACILITATOR_TYPE: str = "standard"  # "standard" or "signed"
    # ...or a JSON file with per-network bindings (takes precedence)
    X402_FACILITATORS_FILE: Optional[str] = None

    # Transport timeout for facilitator calls; unrelated to maxTimeoutSeconds
    X402_FACILITATOR_TIMEOUT_SECONDS: float = 30.0

    # JSON-lines audit trail, disabled when unset
    X402_AUDIT_LOG_PATH: Optional[str] = None

    # Credentials for a single signed facilitator
    OKX_API_KEY: Optional[str] = None
    OKX_SECRET_KEY: Optional[str] = None
    OKX_PASSPHRASE: Optional[str] = None
    OKX_PROJECT_ID: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
