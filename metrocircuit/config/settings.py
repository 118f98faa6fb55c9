"""Application settings loaded from environment variables via pydantic-settings.

Values are read from environment variables first, then from a ``.env`` file
in the working directory.  Field ``gemini_api_key`` maps to ``GEMINI_API_KEY``
and so on.  List fields take JSON in the environment, e.g.
``GEMINI_TEXT_MODELS='["gemini-2.0-flash", "gemini-1.5-pro"]'``.

Algorithm tunables that are not secrets or deployment knobs (scoring
weights, keyword injection) live in ``config/config.yaml`` instead; see
:mod:`metrocircuit.config.loader`.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """MetroCircuit application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM / embedding providers ===
    # Empty key = "not configured"; main.py skips the provider.
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_text_models: list[str] = Field(
        default_factory=lambda: ["gemini-2.0-flash", "gemini-1.5-flash", "gemini-1.5-pro"]
    )
    gemini_api_versions: list[str] = Field(default_factory=lambda: ["v1beta", "v1"])
    gemini_embedding_models: list[str] = Field(
        default_factory=lambda: ["text-embedding-004", "embedding-001"]
    )
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_models: list[str] = Field(default_factory=lambda: ["gpt-4o-mini", "gpt-4o"])
    openai_vision_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    llm_timeout_seconds: float = 60.0

    # === Storage / sources ===
    row_store_backend: str = "sqlite"  # "sqlite" | "memory"
    sqlite_db_path: str = "data/metrocircuit.db"
    source_folder: str = "data/inbox"
    max_source_bytes: int = 50 * 1024 * 1024

    # === Extraction ===
    min_extracted_chars: int = 50
    vision_max_pages: int = 20
    ocr_max_pages: int = 30
    render_dpi: int = 150

    # === Segmentation ===
    segment_target_chars: int = 1200
    segment_overlap_chars: int = 200
    hard_split_overlap_chars: int = 100
    page_window_chars: int = 3000

    # === Batch ingestion ===
    # Headroom below a 300 s host ceiling.
    batch_time_budget_seconds: float = 240.0
    page_group_max_bytes: int = 8000
    rate_limit_every: int = 5
    rate_limit_pause_seconds: float = 1.0
    embed_on_ingest: bool = False
    embedding_max_chars: int = 8000

    # === Query ===
    query_candidate_pool: int = 20
    query_default_match_count: int = 8
    query_max_match_count: int = 50
    draft_attempts: int = 2
    answer_log_max_chars: int = 1000

    # === App config ===
    config_path: str = "config/config.yaml"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return LLM provider names that have non-empty API keys, in priority order."""
        providers: list[str] = []
        if self.gemini_api_key:
            providers.append("gemini")
        if self.openai_api_key:
            providers.append("openai")
        return providers
