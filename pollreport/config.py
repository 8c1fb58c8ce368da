from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # PostgreSQL (DATABASE_URL wins over the discrete POSTGRES_* values)
    database_url: str = ""
    postgres_host: str = ""
    postgres_user: str = ""
    postgres_password: str = ""
    postgres_database: str = ""
    postgres_port: int = 5432
    postgres_ssl: bool = True
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    # Supabase HTTP fallback for poll search
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_timeout_seconds: float = 30.0

    # Azure AI inference (OpenAI-compatible chat completions)
    azure_inference_sdk_endpoint: str = ""
    azure_inference_sdk_key: str = ""
    azure_inference_api_version: str = "2024-05-01-preview"
    azure_report_model: str = "DeepSeek-V3"

    # Google Gemini
    gemini_api_key: str = ""
    gemini_report_model: str = "gemini-2.0-flash"

    default_provider: str = "azure"  # azure | gemini

    # Query refinement (falls back to the Azure endpoint/key when empty)
    query_refinement_enabled: bool = False
    refinement_base_url: str = ""
    refinement_api_key: str = ""
    refinement_model: str = "gpt-4o-mini"
    refinement_timeout_seconds: float = 20.0
    refinement_max_attempts: int = 3
    refinement_retry_base_delay: float = 1.0

    # Report generation
    report_format: str = "markdown"  # markdown | html
    report_search_limit: int = 10
    report_max_tokens: int = 4000
    report_temperature: float = 0.3
    generation_timeout_seconds: float = 120.0
    generation_max_attempts: int = 3
    generation_retry_base_delay: float = 2.0
    embed_base_url: str = ""

    # Endpoints
    search_default_limit: int = 100
    metrics_cache_ttl_seconds: int = 24 * 60 * 60
    metrics_top_n: int = 20

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def database_configured(self) -> bool:
        return bool(self.database_url or self.postgres_host)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


settings = Settings()
