"""Configuration module for the identity gateway."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

CHANNELS = ("email", "sms", "chat")
DEFAULT_SECRET_KEY = "identity-gateway-secret-key-change-in-production"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class AuthPolicy:
    """Token and verification-code policy."""
    secret_key: str = DEFAULT_SECRET_KEY
    access_token_ttl: int = 900  # 15 minutes
    refresh_token_ttl: int = 86400 * 30  # 30 days
    code_length: int = 6
    code_ttl: int = 600  # 10 minutes
    rate_limit_window: int = 900
    rate_limit_max: int = 5
    require_verification: bool = False
    verification_channel: str = "email"
    bcrypt_rounds: int = 12

    def __post_init__(self):
        if self.access_token_ttl <= 0 or self.refresh_token_ttl <= 0:
            raise ValueError("Token TTLs must be positive")
        if self.code_ttl <= 0:
            raise ValueError("Verification code TTL must be positive")
        if not 4 <= self.code_length <= 10:
            raise ValueError("Verification code length must be between 4 and 10")
        if self.rate_limit_window <= 0 or self.rate_limit_max <= 0:
            raise ValueError("Rate limit window and threshold must be positive")
        if self.verification_channel not in CHANNELS:
            raise ValueError(f"Unknown verification channel: {self.verification_channel}")
        if not self.secret_key:
            raise ValueError("Secret key cannot be empty")


@dataclass(frozen=True)
class StorageConfig:
    """Storage backend selection."""
    backend: str = "sqlite"  # "sqlite" or "memory"
    database_path: str = "data/identity.db"

    def __post_init__(self):
        if self.backend not in ("sqlite", "memory"):
            raise ValueError(f"Unknown storage backend: {self.backend}")


@dataclass(frozen=True)
class ServerConfig:
    """Listener settings for both front ends."""
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8001
    mcp_api_key: Optional[str] = None
    log_level: str = "INFO"


@dataclass(frozen=True)
class DeliveryConfig:
    """Credentials for out-of-band code delivery."""
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    twilio_whatsapp_number: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    sendgrid_from_email: Optional[str] = None


@dataclass(frozen=True)
class Config:
    """Main configuration container."""
    auth: AuthPolicy = field(default_factory=AuthPolicy)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)


def load_config() -> Config:
    """Load configuration from environment variables (and .env)."""
    load_dotenv()

    auth = AuthPolicy(
        secret_key=os.getenv("JWT_SECRET_KEY") or DEFAULT_SECRET_KEY,
        access_token_ttl=_env_int("ACCESS_TOKEN_TTL_SECONDS", 900),
        refresh_token_ttl=_env_int("REFRESH_TOKEN_TTL_SECONDS", 86400 * 30),
        code_length=_env_int("VERIFICATION_CODE_LENGTH", 6),
        code_ttl=_env_int("VERIFICATION_CODE_TTL_SECONDS", 600),
        rate_limit_window=_env_int("VERIFICATION_RATE_LIMIT_WINDOW_SECONDS", 900),
        rate_limit_max=_env_int("VERIFICATION_RATE_LIMIT_MAX", 5),
        require_verification=_env_bool("REQUIRE_VERIFICATION", False),
        verification_channel=os.getenv("VERIFICATION_CHANNEL", "email"),
        bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 12),
    )

    storage = StorageConfig(
        backend=os.getenv("STORAGE_BACKEND", "sqlite"),
        database_path=os.getenv("DATABASE_PATH", "data/identity.db"),
    )

    server = ServerConfig(
        api_host=os.getenv("API_HOST", "0.0.0.0"),
        api_port=_env_int("API_PORT", 8080),
        mcp_host=os.getenv("MCP_HOST", "0.0.0.0"),
        mcp_port=_env_int("MCP_PORT", 8001),
        mcp_api_key=os.getenv("MCP_API_KEY") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

    delivery = DeliveryConfig(
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER"),
        twilio_whatsapp_number=os.getenv("TWILIO_WHATSAPP_NUMBER"),
        sendgrid_api_key=os.getenv("SENDGRID_API_KEY"),
        sendgrid_from_email=os.getenv("SENDGRID_FROM_EMAIL"),
    )

    return Config(auth=auth, storage=storage, server=server, delivery=delivery)
