from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SQLSERVER_CONN_STRING: str = ""
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # Pricing
    LENDER_MARGIN: float = 2.50
    LOCK_PERIOD_DAYS: int = 15
    BASE_CLOSING_COSTS: float = 1500.0
    APR_METHOD: str = "newton"
    EXTERNAL_MIN_RATES: int = 5

    # Rate sheet admin
    MAX_RATE_SHEETS: int = 5

    # LlamaCloud retrieval fallback
    LLAMA_CLOUD_API_KEY: str = ""
    LLAMA_CLOUD_BASE_URL: str = "https://api.cloud.llamaindex.ai/api/v1"
    LLAMA_CLOUD_INDEX: str = "mortgage-rate-sheets"
    USE_LLAMA_CLOUD: bool = True
    LLAMA_CLOUD_TIMEOUT: float = 10.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
