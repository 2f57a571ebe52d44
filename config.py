from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env relative to this file's directory (the project root),
# not the working directory.
_ENV_FILE = Path(__file__).resolve().parent / ".env"

# Official government sites that may be scraped or searched.
DEFAULT_ALLOWED_DOMAINS: list[str] = [
    "indiacode.nic.in",
    "cbic.gov.in",
    "gst.gov.in",
    "incometaxindia.gov.in",
    "mca.gov.in",
    "legislative.gov.in",
    "doj.gov.in",
    "egazette.nic.in",
    "lawmin.gov.in",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(_ENV_FILE), case_sensitive=False)

    # Storage
    database_url: str = Field(default="", validation_alias="DATABASE_URL")
    database_pool_min_size: int = Field(default=1, validation_alias="DATABASE_POOL_MIN_SIZE")
    database_pool_max_size: int = Field(default=10, validation_alias="DATABASE_POOL_MAX_SIZE")
    # Uploaded files live under this directory, keyed by "<owner_id>/<name>".
    document_storage_dir: str = Field(
        default="./storage/legal-documents", validation_alias="DOCUMENT_STORAGE_DIR"
    )
    document_max_bytes: int = Field(
        default=52_428_800, validation_alias="DOCUMENT_MAX_BYTES"
    )

    # Embeddings
    embedding_base_url: str = Field(
        default="https://api.openai.com/v1", validation_alias="EMBEDDING_BASE_URL"
    )
    embedding_model: str = Field(
        default="text-embedding-3-small", validation_alias="EMBEDDING_MODEL"
    )
    embedding_api_key: str | None = Field(default=None, validation_alias="EMBEDDING_API_KEY")
    embedding_dimensions: int = Field(default=1536, validation_alias="EMBEDDING_DIMENSIONS")
    embedding_timeout: float = Field(default=30.0, validation_alias="EMBEDDING_TIMEOUT")

    # Chat model (classification + answer generation)
    llm_base_url: str = Field(
        default="https://api.openai.com/v1", validation_alias="LLM_BASE_URL"
    )
    llm_api_key: str | None = Field(default=None, validation_alias="LLM_API_KEY")
    llm_model: str = Field(default="gpt-4o-mini", validation_alias="LLM_MODEL")
    llm_temperature: float = Field(default=0.1, validation_alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=2000, validation_alias="LLM_MAX_TOKENS")
    llm_timeout: float = Field(default=60.0, validation_alias="LLM_TIMEOUT")

    # Chunking / ingestion
    chunk_target_size: int = Field(default=1000, validation_alias="CHUNK_TARGET_SIZE")
    chunk_overlap: int = Field(default=200, validation_alias="CHUNK_OVERLAP")
    # Extracted text shorter than this is treated as an extraction failure.
    ingest_min_text_length: int = Field(default=100, validation_alias="INGEST_MIN_TEXT_LENGTH")
    # Rows per INSERT transaction, bounded to respect storage payload limits.
    ingest_batch_size: int = Field(default=50, validation_alias="INGEST_BATCH_SIZE")
    # When an embedding call fails, keep the chunk (text-search only)
    # instead of dropping it.
    ingest_keep_unembedded_chunks: bool = Field(
        default=True, validation_alias="INGEST_KEEP_UNEMBEDDED_CHUNKS"
    )

    # Firecrawl (scrape + web search fallback)
    firecrawl_api_key: str | None = Field(default=None, validation_alias="FIRECRAWL_API_KEY")
    firecrawl_timeout_ms: int = Field(default=30000, validation_alias="FIRECRAWL_TIMEOUT_MS")
    firecrawl_wait_for_ms: int = Field(default=3000, validation_alias="FIRECRAWL_WAIT_FOR_MS")
    allowed_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_DOMAINS),
        validation_alias="ALLOWED_DOMAINS",
    )

    # External legal sources
    indian_kanoon_api_url: str = Field(
        default="https://api.indiankanoon.org", validation_alias="INDIAN_KANOON_API_URL"
    )
    indian_kanoon_api_key: str | None = Field(
        default=None, validation_alias="INDIAN_KANOON_API_KEY"
    )
    data_gov_api_url: str = Field(
        default="https://api.data.gov.in/resource", validation_alias="DATA_GOV_API_URL"
    )
    data_gov_api_key: str | None = Field(default=None, validation_alias="DATA_GOV_IN_API_KEY")
    legal_api_timeout: float = Field(default=30.0, validation_alias="LEGAL_API_TIMEOUT")
    # Max candidates ingested per external legal search request.
    legal_search_ingest_cap: int = Field(default=5, validation_alias="LEGAL_SEARCH_INGEST_CAP")

    # Retrieval
    retrieval_match_threshold: float = Field(
        default=0.7, validation_alias="RETRIEVAL_MATCH_THRESHOLD"
    )
    retrieval_match_count: int = Field(default=5, validation_alias="RETRIEVAL_MATCH_COUNT")
    retrieval_text_match_limit: int = Field(
        default=10, validation_alias="RETRIEVAL_TEXT_MATCH_LIMIT"
    )
    # Full-text hits carry no fine-grained ranking signal; they all get this score.
    retrieval_text_match_score: float = Field(
        default=0.5, validation_alias="RETRIEVAL_TEXT_MATCH_SCORE"
    )
    web_search_enabled: bool = Field(default=True, validation_alias="WEB_SEARCH_ENABLED")
    web_search_limit: int = Field(default=3, validation_alias="WEB_SEARCH_LIMIT")
    web_snippet_max_chars: int = Field(default=2000, validation_alias="WEB_SNIPPET_MAX_CHARS")

    # Generation
    generation_match_threshold: float = Field(
        default=0.65, validation_alias="GENERATION_MATCH_THRESHOLD"
    )
    query_min_length: int = Field(default=3, validation_alias="QUERY_MIN_LENGTH")
    query_max_length: int = Field(default=2000, validation_alias="QUERY_MAX_LENGTH")
    history_max_turns: int = Field(default=10, validation_alias="HISTORY_MAX_TURNS")
    # Soft cap on the retrieved-context block, in tokens.
    generation_context_token_budget: int = Field(
        default=12000, validation_alias="GENERATION_CONTEXT_TOKEN_BUDGET"
    )
    tokenizer_name: str = Field(default="cl100k_base", validation_alias="TOKENIZER_NAME")

    # MCP server
    mcp_transport: str = Field(default="stdio", validation_alias="MCP_TRANSPORT")
    mcp_host: str = Field(default="0.0.0.0", validation_alias="MCP_HOST")
    mcp_port: int = Field(default=8765, validation_alias="MCP_PORT")
    mcp_auth_token: str | None = Field(default=None, validation_alias="MCP_AUTH_TOKEN")
    # Identity every MCP call is scoped to; the deployment authenticates it.
    mcp_owner_id: str | None = Field(default=None, validation_alias="MCP_OWNER_ID")
    mcp_tool_timeout: int = Field(default=120, validation_alias="MCP_TOOL_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="RULEX_LOG_LEVEL")


settings = Settings()
