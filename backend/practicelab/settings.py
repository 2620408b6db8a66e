from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Provider can be "openai" (any OpenAI-compatible /chat/completions server) or "gemini"
	llm_provider: str = Field(default="openai", validation_alias="LLM_PROVIDER")
	llm_base_url: str = Field(default="http://localhost:8080/v1", validation_alias="LLM_BASE_URL")
	llm_model: str = Field(default="local-model", validation_alias="LLM_MODEL")
	llm_api_key: str | None = Field(default=None, validation_alias="LLM_API_KEY")
	llm_timeout_seconds: float = Field(default=60.0, validation_alias="LLM_TIMEOUT_SECONDS")
	# Ask the provider for schema-constrained JSON output when it supports it
	llm_json_mode: bool = Field(default=False, validation_alias="LLM_JSON_MODE")

	# Gemini (Generative Language API)
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Case Practice Lab", validation_alias="OPENROUTER_TITLE")

	# Embeddings
	embed_model: str = Field(default="sentence-transformers/all-MiniLM-L6-v2", validation_alias="EMBED_MODEL")
	# Chroma index directory; empty keeps the index in memory and rebuilds it from the database at startup
	vector_dir: str | None = Field(default="./practicelab_vectors", validation_alias="VECTOR_DIR")
	vector_collection: str = Field(default="case_studies", validation_alias="VECTOR_COLLECTION")

	# Case generation
	novelty_threshold: float = Field(default=0.88, validation_alias="NOVELTY_THRESHOLD")
	generation_max_tries: int = Field(default=3, validation_alias="GENERATION_MAX_TRIES")
	match_count: int = Field(default=10, validation_alias="MATCH_COUNT")
	# Reject concurrent generation for the same category/level (single process only)
	generation_lock_enabled: bool = Field(default=False, validation_alias="GENERATION_LOCK_ENABLED")

	# Token verification for the hosted auth provider (disabled when no secret is set)
	supabase_jwt_secret: str | None = Field(default=None, validation_alias="SUPABASE_JWT_SECRET")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	jwt_audience: str | None = Field(default="authenticated", validation_alias="JWT_AUDIENCE")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
