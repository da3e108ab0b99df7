from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class AdminSettings(BaseSettings):
    """Deployment switches that gate the admin surface and shape log output."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"                # dev / staging / prod
    SERVICE_NAME: str = "storefront"
    ENABLE_ADMIN: bool = True
    ADMIN_SECRET: Optional[str] = None


admin_config = AdminSettings()
