from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "presale-jwt-secret"
ALLOWED_APP_MODES = {"demo", "pilot", "production"}
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Token Presale Settlement Service"
    app_mode: str = Field(default="demo", validation_alias="PRESALE_APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./test.db",
        validation_alias="PRESALE_DATABASE_URL",
    )
    auto_create_schema: bool = True
    require_migrations: bool = False
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    jwt_secret: str = DEFAULT_JWT_SECRET
    allowed_roles: str = "OPS,ADMIN"
    testing: bool = Field(default=False, validation_alias="PRESALE_TESTING")

    purchase_rate_limit_requests: int = 30
    purchase_rate_limit_window_s: int = 60

    payment_currency: str = "MATIC"
    chain_id: int = 137
    presale_wallet_address: str = ""
    token_price_native: Decimal = Decimal("0.00001")

    token_contract_address: str = ""
    ledger_rpc_url: str = ""
    custodial_signer_url: str = ""
    distribution_wallet_address: str = ""
    ledger_timeout_s: float = 10.0
    ledger_max_retries: int = 2
    ledger_backoff_s: float = 0.5

    confirmation_max_attempts: int = 30
    confirmation_initial_delay_s: float = 2.0
    confirmation_backoff_multiplier: float = 1.5
    confirmation_max_delay_s: float = 15.0

    distribution_batch_size: int = 10
    distribution_max_attempts: int = 5
    distribution_lease_ttl_s: int = 15 * 60

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"PRESALE_APP_MODE must be one of: {allowed}")
        return mode

    @field_validator("distribution_batch_size", "distribution_max_attempts")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value


settings = Settings()


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def allowed_roles_list() -> list[str]:
    return [value.strip() for value in settings.allowed_roles.split(",") if value.strip()]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if not settings.testing and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when PRESALE_TESTING is false"
        )
    if not settings.testing and len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when PRESALE_TESTING is false"
        )
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError("PRESALE_DATABASE_URL must use postgres when PRESALE_APP_MODE=production")


def missing_distribution_settings() -> list[str]:
    required = {
        "LEDGER_RPC_URL": settings.ledger_rpc_url,
        "CUSTODIAL_SIGNER_URL": settings.custodial_signer_url,
        "TOKEN_CONTRACT_ADDRESS": settings.token_contract_address,
        "DISTRIBUTION_WALLET_ADDRESS": settings.distribution_wallet_address,
    }
    return [name for name, value in required.items() if not value.strip()]


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
