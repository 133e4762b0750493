from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	# Default model and the comma separated set a request may pick from
	openai_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
	openai_allowed_models: str = Field(default="gpt-4o-mini,gpt-4o,gpt-4.1-mini", validation_alias="OPENAI_ALLOWED_MODELS")
	openai_base_url: str = Field(default="https://api.openai.com/v1/chat/completions", validation_alias="OPENAI_BASE_URL")

	# Wall-clock budget for one request, shared by the fetch, the model call and backoff sleeps
	budget_ms: int = Field(default=18_000, validation_alias="WORKSHEET_BUDGET_MS")
	fetch_timeout_ms: int = Field(default=4_000, validation_alias="WORKSHEET_FETCH_TIMEOUT_MS")
	min_fetch_ms: int = Field(default=1_000, validation_alias="WORKSHEET_MIN_FETCH_MS")
	per_call_timeout_ms: int = Field(default=9_000, validation_alias="WORKSHEET_CALL_TIMEOUT_MS")
	min_call_ms: int = Field(default=1_500, validation_alias="WORKSHEET_MIN_CALL_MS")
	max_chars: int = Field(default=3_000, validation_alias="WORKSHEET_MAX_CHARS")

	# Retry policy for the completion call
	max_attempts: int = Field(default=3, validation_alias="WORKSHEET_MAX_ATTEMPTS")
	backoff_base_ms: int = Field(default=400, validation_alias="WORKSHEET_BACKOFF_BASE_MS")
	backoff_jitter_ms: int = Field(default=200, validation_alias="WORKSHEET_BACKOFF_JITTER_MS")
	safety_margin_ms: int = Field(default=500, validation_alias="WORKSHEET_SAFETY_MARGIN_MS")

	credit_line: str = Field(default="Prepared by [Your Name]", validation_alias="WORKSHEET_CREDIT_LINE")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

	@property
	def allowed_models(self) -> list[str]:
		return [m.strip() for m in self.openai_allowed_models.split(",") if m.strip()]


settings = Settings()


def get_settings() -> Settings:
	return settings
