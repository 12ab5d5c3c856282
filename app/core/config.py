from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App settings
    PROJECT_NAME: str = "ExpenseAnalytics"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)

    # DynamoDB
    DYNAMO_REGION: str = Field(default="eu-west-1", validation_alias="DYNAMO_REGION")
    DYNAMO_EXPENSES_TABLE: str = Field(default="expense-analytics-expenses", validation_alias="DYNAMO_TABLE_EXPENSES")

    # JWT Authentication
    JWT_SECRET_KEY: str = Field(default="dev-only-secret-change-me-before-deploying-0123456789abcdef", validation_alias="JWT_SECRET")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # Exchange rates
    BASE_CURRENCY: str = "USD"
    RATES_API_URL: str = Field(default="https://api.exchangerate-api.com/v4/latest", validation_alias="RATES_API_URL")
    RATES_API_TIMEOUT_SECONDS: float = 8.0
    RATES_CACHE_TTL_HOURS: int = Field(default=24, validation_alias="RATES_CACHE_TTL_HOURS")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
