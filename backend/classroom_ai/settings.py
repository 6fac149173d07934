from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field

class Settings(BaseSettings):
	# Provider can be "local" (Ollama-style server) or "hosted_api" (chat-completions API).
	# The older names "ollama" and "api" are still accepted.
	llm_provider: str = Field(default="local", validation_alias="LLM_PROVIDER")
	llm_model: str = Field(default="phi3:mini", validation_alias="LLM_MODEL")
	# Optional: each backend has its own default endpoint when unset
	llm_base_url: str | None = Field(default=None, validation_alias=AliasChoices("LLM_BASE_URL", "OLLAMA_BASE_URL"))
	llm_api_key: str | None = Field(default=None, validation_alias="LLM_API_KEY")
	llm_temperature: float = Field(default=0.7, validation_alias="LLM_TEMPERATURE")
	llm_max_tokens: int = Field(default=2000, validation_alias="LLM_MAX_TOKENS")
	llm_timeout_seconds: float = Field(default=60.0, validation_alias="LLM_TIMEOUT_SECONDS")

	# CORS origin of the classroom frontend
	frontend_url: str = Field(default="http://localhost:8080", validation_alias="FRONTEND_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database (generated quizzes are stored here when a teacher id is supplied)
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	def llm_config_values(self) -> dict:
		values = {
			"provider": self.llm_provider,
			"model": self.llm_model,
			"base_url": self.llm_base_url,
			"api_key": self.llm_api_key,
			"temperature": self.llm_temperature,
			"max_tokens": self.llm_max_tokens,
			"timeout_seconds": self.llm_timeout_seconds,
		}
		return {k: v for k, v in values.items() if v is not None}

settings = Settings()
