from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    APP_NAME: str = "Payables"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "postgresql+asyncpg://localhost/payables"
    DATABASE_SYNC_URL: str = ""
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_RECYCLE: int = 300

    # Approval workflow
    APPROVER_ROLES: str = "admin,super_admin"
    MAX_RESUBMISSIONS: int = 2  # 3 attempts in total: initial + 2 resubmissions
    MIN_REJECTION_REASON_LENGTH: int = 10

    # Payments
    MAX_PAYMENT_AMOUNT: int = 999_999_999

    @property
    def approver_roles_set(self) -> frozenset[str]:
        return frozenset(r.strip() for r in self.APPROVER_ROLES.split(",") if r.strip())

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
