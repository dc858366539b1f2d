from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    environment: str = "development"
    debug: bool = True
    allowed_origins: str = "http://localhost:3000,http://localhost:19006"

    # Upstream REST API (drafts, sub-resources, workflow requests)
    upstream_api_url: str = "http://localhost:8080/api/v1"
    upstream_timeout_seconds: float = 30.0
    gateway_backend: str = "http"  # "http" | "memory"

    # Labels
    default_language: str = "EN"

    # Editable collections
    percentage_ceiling: float = 100.0
    row_value_max_length: int = 6

    # Sessions
    session_ttl_seconds: int = 3600  # 1 hour idle

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "ESCROWDESK_"}


settings = Settings()
