from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "prod"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./eprojects.db"

    JWT_SECRET: str = "CHANGE_ME"
    JWT_ACCESS_MINUTES: int = 60 * 24

    PASSWORD_RESET_TOKEN_MINUTES: int = 60

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800

    ALLOWED_HOSTS: str = "localhost,127.0.0.1,testserver"
    SECURITY_HEADERS_ENABLED: bool = True

    SUPPORT_CONTACT_EMAIL: str = "suporte@eprojects.com.br"

    # Access / entitlement windows
    COURSE_PURCHASE_DAYS: int = 30
    PLAN_DAYS_PER_MONTH: int = 30
    PLAN_MAX_MONTHS: int = 12
    PLAN_UPGRADE_DISCOUNT: float = 0.20

    # Expiry sweeper
    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 3600

    # Stripe
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_WEBHOOK_MAX_AGE_SECONDS: int = 300
    STRIPE_CURRENCY: str = "brl"
    STRIPE_MIN_AMOUNT: float = 0.50

settings = Settings()
