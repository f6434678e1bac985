from typing import Dict, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SOURCES: Dict[str, str] = {
	"procedimiento": "https://966e7448.delivery.rocketcdn.me/wp-content/uploads/manuales/pez-vela/GT2025-RRHH-PezVela-Manual-de-procedimiento.pdf",
	"maridaje": "https://966e7448.delivery.rocketcdn.me/wp-content/uploads/manuales/pez-vela/GT2025-RRHH-PezVela-maridaje.pdf",
	"recetario": "https://966e7448.delivery.rocketcdn.me/wp-content/uploads/manuales/pez-vela/GT2025-RRHH-PezVela-recetario.pdf",
}


class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")
	generation_timeout_seconds: float = Field(default=60.0, validation_alias="GENERATION_TIMEOUT_SECONDS")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Assessment Session API", validation_alias="OPENROUTER_TITLE")

	# Deck sizing and generation limits
	question_count: int = Field(default=5, ge=1, validation_alias="QUESTION_COUNT")
	bank_min_items: int = Field(default=8, ge=1, validation_alias="BANK_MIN_ITEMS")
	bank_oversample: int = Field(default=4, ge=0, validation_alias="BANK_OVERSAMPLE")
	source_text_budget: int = Field(default=30000, ge=1, validation_alias="SOURCE_TEXT_BUDGET")
	min_text_chars: int = Field(default=200, ge=0, validation_alias="MIN_TEXT_CHARS")

	# Source retrieval
	fetch_attempts: int = Field(default=3, ge=1, validation_alias="FETCH_ATTEMPTS")
	fetch_timeout_seconds: float = Field(default=20.0, gt=0, validation_alias="FETCH_TIMEOUT_SECONDS")
	fetch_backoff_seconds: float = Field(default=0.5, ge=0, validation_alias="FETCH_BACKOFF_SECONDS")
	# Ordered: the order is also the remainder priority when splitting a combined deck
	sources: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SOURCES), validation_alias="ASSESSMENT_SOURCES")

	start_phrase: str = Field(default="Realizar Test", validation_alias="START_PHRASE")

	# Result collector; leaving the URL unset disables delivery
	results_webhook_url: str | None = Field(default=None, validation_alias="RESULTS_WEBHOOK_URL")
	results_timeout_seconds: float = Field(default=10.0, gt=0, validation_alias="RESULTS_TIMEOUT_SECONDS")
	# "background" detaches delivery from the finish call, "await" reports its outcome
	delivery_mode: Literal["background", "await"] = Field(default="background", validation_alias="DELIVERY_MODE")

	cors_origins: List[str] = Field(default_factory=lambda: ["*"], validation_alias="CORS_ORIGINS")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

settings = Settings()
