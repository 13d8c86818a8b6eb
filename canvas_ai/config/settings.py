from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    # Providers
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_default_model: str = Field(default="gpt-4o", validation_alias="OPENAI_DEFAULT_MODEL")
    openai_decision_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_DECISION_MODEL")
    openai_embeddings_model: str = Field(
        default="text-embedding-3-small",
        validation_alias="OPENAI_EMBEDDINGS_MODEL",
    )
    embedding_dim: int = Field(default=1536, validation_alias="EMBEDDING_DIM")
    perplexity_api_key: str = Field(default="", validation_alias="PERPLEXITY_API_KEY")
    perplexity_base_url: str = Field(default="https://api.perplexity.ai", validation_alias="PERPLEXITY_BASE_URL")
    perplexity_model: str = Field(default="sonar-pro", validation_alias="PERPLEXITY_MODEL")
    serpapi_key: str = Field(default="", validation_alias="SERPAPI_KEY")
    serpapi_url: str = Field(default="https://serpapi.com/search.json", validation_alias="SERPAPI_URL")
    supabase_url: str = Field(default="", validation_alias="SUPABASE_URL")
    supabase_service_key: str = Field(default="", validation_alias="SUPABASE_SERVICE_ROLE_KEY")

    # Retrieval
    match_count: int = Field(default=12, validation_alias="RAG_MATCH_COUNT")
    global_match_count: int = Field(default=8, validation_alias="RAG_GLOBAL_MATCH_COUNT")
    min_similarity: float = Field(default=0.70, validation_alias="RAG_MIN_SIMILARITY")
    internal_top_n: int = Field(default=20, validation_alias="RAG_INTERNAL_TOP_N")
    context_top_n: int = Field(default=8, validation_alias="RAG_CONTEXT_TOP_N")
    recent_fallback_limit: int = Field(default=8, validation_alias="RAG_RECENT_FALLBACK_LIMIT")
    snippet_chars: int = Field(default=300, validation_alias="RAG_SNIPPET_CHARS")
    history_turn_limit: int = Field(default=10, validation_alias="RAG_HISTORY_TURN_LIMIT")

    # Sufficiency heuristic (percentages on the 0-100 scale)
    min_chunks_for_sufficiency: int = Field(default=3, validation_alias="RAG_MIN_CHUNKS_FOR_SUFFICIENCY")
    top_score_strong: float = Field(default=95.0, validation_alias="RAG_TOP_SCORE_STRONG")
    top_score_good: float = Field(default=85.0, validation_alias="RAG_TOP_SCORE_GOOD")
    avg3_score_good: float = Field(default=80.0, validation_alias="RAG_AVG3_SCORE_GOOD")
    top_score_broad: float = Field(default=75.0, validation_alias="RAG_TOP_SCORE_BROAD")
    broad_chunk_count: int = Field(default=5, validation_alias="RAG_BROAD_CHUNK_COUNT")
    min_context_chars: int = Field(default=300, validation_alias="RAG_MIN_CONTEXT_CHARS")

    # Web search and citations
    web_result_limit: int = Field(default=5, validation_alias="WEB_RESULT_LIMIT")
    knowledge_citation_limit: int = Field(default=8, validation_alias="KNOWLEDGE_CITATION_LIMIT")
    web_citation_limit: int = Field(default=5, validation_alias="WEB_CITATION_LIMIT")
    citation_dedupe: bool = Field(default=False, validation_alias="CITATION_DEDUPE")
    web_enrich_top_n: int = Field(default=3, validation_alias="WEB_ENRICH_TOP_N")
    web_enrich_max_chars: int = Field(default=500, validation_alias="WEB_ENRICH_MAX_CHARS")

    # Decision and synthesis
    action_decision_enabled: bool = Field(default=True, validation_alias="ACTION_DECISION_ENABLED")
    decision_max_tokens: int = Field(default=300, validation_alias="DECISION_MAX_TOKENS")
    synthesis_max_tokens: int = Field(default=2500, validation_alias="SYNTHESIS_MAX_TOKENS")
    synthesis_temperature: float = Field(default=0.2, validation_alias="SYNTHESIS_TEMPERATURE")

    # Timeouts (seconds)
    embedding_timeout_s: float = Field(default=10.0, validation_alias="EMBEDDING_TIMEOUT_S")
    vector_search_timeout_s: float = Field(default=8.0, validation_alias="VECTOR_SEARCH_TIMEOUT_S")
    document_lookup_timeout_s: float = Field(default=5.0, validation_alias="DOCUMENT_LOOKUP_TIMEOUT_S")
    decision_timeout_s: float = Field(default=15.0, validation_alias="DECISION_TIMEOUT_S")
    web_search_timeout_s: float = Field(default=15.0, validation_alias="WEB_SEARCH_TIMEOUT_S")
    page_fetch_timeout_s: float = Field(default=5.0, validation_alias="PAGE_FETCH_TIMEOUT_S")
    synthesis_timeout_s: float = Field(default=60.0, validation_alias="SYNTHESIS_TIMEOUT_S")
    request_deadline_s: float = Field(default=120.0, validation_alias="REQUEST_DEADLINE_S")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level, falling back to INFO for unknown values."""
        level = str(v or "INFO").strip().upper()
        if level not in VALID_LOG_LEVELS:
            logger.warning(f"Unknown LOG_LEVEL={v!r}, using INFO")
            return "INFO"
        return level

    @field_validator("min_similarity")
    @classmethod
    def validate_min_similarity(cls, v: float) -> float:
        """Clamp minimum similarity to the cosine range."""
        if not -1.0 <= v <= 1.0:
            clamped = min(1.0, max(-1.0, v))
            logger.warning(f"RAG_MIN_SIMILARITY={v} outside [-1, 1], clamped to {clamped}")
            return clamped
        return v

    @field_validator("supabase_url", "perplexity_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
