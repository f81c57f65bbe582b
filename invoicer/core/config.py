
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("invoicer", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Completion API (OpenAI-compatible chat completions)
    groq_api_key: str | None = Field(default=None, alias="GROQ_API_KEY")
    groq_base_url: str = Field("https://api.groq.com/openai/v1", alias="GROQ_BASE_URL")
    groq_model: str = Field("openai/gpt-oss-20b", alias="GROQ_MODEL")
    groq_max_retries: int = Field(5, alias="GROQ_MAX_RETRIES")
    groq_retry_base_ms: int = Field(1000, alias="GROQ_RETRY_BASE_MS")
    groq_batch_size: int = Field(5, alias="GROQ_BATCH_SIZE")
    groq_timeout_seconds: float = Field(120.0, alias="GROQ_TIMEOUT_SECONDS")
    system_prompt_path: str | None = Field(default=None, alias="SYSTEM_PROMPT_PATH")

    # LlamaParse document parsing
    llamaparse_base_url: str = Field("https://api.cloud.llamaindex.ai", alias="LLAMAPARSE_BASE_URL")
    llamaparse_api_key: str | None = Field(default=None, alias="LLAMAPARSE_API_KEY")
    llamaparse_project_id: str | None = Field(default=None, alias="LLAMAPARSE_PROJECT_ID")
    parse_poll_attempts: int = Field(60, alias="PARSE_POLL_ATTEMPTS")
    parse_poll_interval_seconds: float = Field(2.0, alias="PARSE_POLL_INTERVAL_SECONDS")

    # Google credentials (service account file, inline service account, or OAuth refresh token)
    google_service_account_file: str | None = Field(default=None, alias="GOOGLE_SERVICE_ACCOUNT_FILE")
    google_client_email: str | None = Field(default=None, alias="GOOGLE_CLIENT_EMAIL")
    google_private_key: str | None = Field(default=None, alias="GOOGLE_PRIVATE_KEY")
    google_client_id: str | None = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: str | None = Field(default=None, alias="GOOGLE_CLIENT_SECRET")
    google_refresh_token: str | None = Field(default=None, alias="GOOGLE_REFRESH_TOKEN")

    # Source sheet (one Drive link per row under SOURCE_LINK_COLUMN)
    source_sheet_id: str | None = Field(default=None, alias="SOURCE_SHEET_ID")
    source_sheet_tab: str = Field("Sheet1", alias="SOURCE_SHEET_TAB")
    source_link_column: str = Field("Invoices", alias="SOURCE_LINK_COLUMN")

    # Target sheet
    target_sheet_id: str | None = Field(default=None, alias="TARGET_SHEET_ID")
    target_invoices_tab: str = Field("Invoices", alias="TARGET_INVOICES_TAB")
    target_line_items_tab: str = Field("Invoice Line Items", alias="TARGET_LINE_ITEMS_TAB")
    sheet_tab_fallback: bool = Field(True, alias="SHEET_TAB_FALLBACK")

    # Run bookkeeping
    processed_files_db: str = Field("processed_files.db", alias="PROCESSED_FILES_DB")
    check_totals: bool = Field(True, alias="CHECK_TOTALS")
    totals_tolerance: float = Field(0.10, alias="TOTALS_TOLERANCE")

    # Shared secret for the scheduled /runs trigger (unset = open)
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "populate_by_name": True}

settings = Settings()
