from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # ERCOT public reports API
    ercot_api_base_url: str = Field(default="https://api.ercot.com/api/public-reports")
    ercot_token_url: str = Field(
        default="https://ercotb2c.b2clogin.com/ercotb2c.onmicrosoft.com/B2C_1_ROPC_Auth/oauth2/v2.0/token"
    )
    ercot_username: str = Field(default="")
    ercot_password: str = Field(default="")
    ercot_client_id: str = Field(default="04b07795-8ddb-461a-bbee-02f9e1bf7b46")
    ercot_scope: str = Field(default="openid")
    ercot_subscription_key: str = Field(default="")
    ercot_bearer_token: str = Field(default="")  # optional, used by the basic snapshot
    ercot_timeout_seconds: float = Field(default=15.0)

    # Report discovery list is cached on the client (seconds)
    ercot_report_cache_ttl: int = Field(default=300)

    # Austin proxy
    live_load_zone: str = Field(default="LZ_SOUTH")
    live_hub: str = Field(default="HB_SOUTH")
    live_label: str = Field(default="Austin (proxy: LZ_SOUTH)")

    # Live bundle refresh (minutes)
    live_refresh_enabled: bool = Field(default=True)
    live_refresh_interval: int = Field(default=5)

    # Scenario defaults
    default_budget_m: float = Field(default=5.0)

    # CORS
    cors_origins: str = Field(default="http://localhost:5173,http://localhost:3000")

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
