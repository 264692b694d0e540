from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = Field(default="Course Marketplace", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    # vacío => sqlite en la raíz del proyecto (ver coursemarket.db)
    database_url: str = Field(default="", alias="DB_URL")
    currency: str = Field(default="INR", alias="CURRENCY")
    # vacío => caché en memoria del proceso; "redis://..." => Redis
    cache_url: str = Field(default="", alias="CACHE_URL")
    coupon_preview_ttl: int = Field(default=3600, alias="COUPON_PREVIEW_TTL")
    cart_totals_ttl: int = Field(default=300, alias="CART_TOTALS_TTL")
    coupon_detail_ttl: int = Field(default=600, alias="COUPON_DETAIL_TTL")
    coupon_validation_ttl: int = Field(default=120, alias="COUPON_VALIDATION_TTL")
    idempotency_ttl: int = Field(default=3600, alias="IDEMPOTENCY_TTL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"


settings = Settings()
