
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("receipt-extraction-service", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # OpenAI (vision model used for extraction)
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str | None = Field(default=None, alias="OPENAI_BASE_URL")
    extraction_model: str = Field("gpt-4o-mini", alias="EXTRACTION_MODEL")
    inference_timeout_seconds: float = Field(60.0, alias="INFERENCE_TIMEOUT_SECONDS")
    inference_max_retries: int = Field(1, alias="INFERENCE_MAX_RETRIES")

    # PDF handling: "rasterize" renders page 1 to PNG, "file" attaches the PDF as-is
    pdf_strategy: Literal["rasterize", "file"] = Field("rasterize", alias="PDF_STRATEGY")
    raster_scale_factor: float = Field(2.0, alias="RASTER_SCALE_FACTOR")

    # Payload limits (decoded bytes for PDFs, raw body for requests)
    max_payload_bytes: int = Field(12 * 1024 * 1024, alias="MAX_PAYLOAD_BYTES")
    min_payload_bytes: int = Field(2 * 1024, alias="MIN_PAYLOAD_BYTES")
    max_request_bytes: int = Field(32 * 1024 * 1024, alias="MAX_REQUEST_BYTES")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

settings = Settings()
