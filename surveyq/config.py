"""Configuration for the survey question engine.

Two sources:
  - agents.toml: models, temperatures, quality thresholds, attempt budget,
    embedding model and fallback providers (checked into the repo)
  - environment / .env: API keys and deployment settings (pydantic-settings)

Environment settings never override agents.toml values; the two cover
disjoint keys.
"""

import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

AGENTS_TOML_PATH = Path(__file__).parent.parent / "agents.toml"

DEFAULT_TEMPERATURE = 0.7


# ---------------------------------------------------------------------------
# agents.toml
# ---------------------------------------------------------------------------


class AgentConfig(BaseModel):
    """One [agents.<name>] table. Unset fields fall back to [defaults]/[providers]."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    groq_model: str = ""
    ollama_model: str = ""


def _agent(temperature: float):
    return Field(default_factory=lambda: AgentConfig(temperature=temperature))


class AgentsTable(BaseModel):
    question_writer: AgentConfig = _agent(0.7)
    quality_judge: AgentConfig = _agent(0.0)
    variable_modeler: AgentConfig = _agent(0.3)
    survey_config_extractor: AgentConfig = _agent(0.0)
    chat_assistant: AgentConfig = _agent(0.5)


class DefaultsTable(BaseModel):
    model: str = "google/gemini-2.0-flash-001"
    timeout: int = 120
    min_response_length: int = 2


class WorkflowTable(BaseModel):
    """Attempt budget: maximum question-generation calls per request."""

    max_regen_attempts: int = Field(default=3, ge=1, le=10)


class QualityThresholds(BaseModel):
    """The [thresholds] table: one threshold set for every quality decision.

    The same values drive the regeneration decision, the issue count used to
    rank attempts, and the feedback text sent back to the question writer.
    """

    min_llm_score: int = Field(default=4, ge=1, le=5)
    min_variable_relevance: float = 0.3
    min_variable_relevance_control: float = 0.2
    max_duplicate_similarity: float = 0.85
    double_negative_window: int = Field(default=3, ge=1)

    def relevance_floor(self, role: str | None) -> float:
        """Variable-relevance floor for a role (controls use the looser floor)."""
        if role == "control":
            return self.min_variable_relevance_control
        return self.min_variable_relevance


class EmbeddingConfig(BaseModel):
    enabled: bool = True
    model_name: str = "all-MiniLM-L6-v2"


class JsonRetryConfig(BaseModel):
    """Attempts per model call; 2 means one retry with the stricter prompt."""

    max_attempts: int = Field(default=2, ge=1, le=2)


class ProviderConfig(BaseModel):
    enabled: bool = False
    default_model: str = ""
    base_url: str = ""


class ProvidersTable(BaseModel):
    groq: ProviderConfig = Field(default_factory=ProviderConfig)
    ollama: ProviderConfig = Field(default_factory=ProviderConfig)


class AgentSettings(BaseModel):
    """Everything in agents.toml, with defaults for any missing table."""

    defaults: DefaultsTable = Field(default_factory=DefaultsTable)
    agents: AgentsTable = Field(default_factory=AgentsTable)
    workflow: WorkflowTable = Field(default_factory=WorkflowTable)
    thresholds: QualityThresholds = Field(default_factory=QualityThresholds)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    json_retry: JsonRetryConfig = Field(default_factory=JsonRetryConfig)
    providers: ProvidersTable = Field(default_factory=ProvidersTable)

    def get_agent_config(self, agent_name: str) -> AgentConfig:
        """Config for one agent; unknown names get an empty config."""
        return getattr(self.agents, agent_name, None) or AgentConfig()

    def get_model(self, agent_name: str) -> str:
        return self.get_agent_config(agent_name).model or self.defaults.model

    def get_temperature(self, agent_name: str) -> float:
        temperature = self.get_agent_config(agent_name).temperature
        return DEFAULT_TEMPERATURE if temperature is None else temperature

    def get_groq_model(self, agent_name: str) -> str:
        return self.get_agent_config(agent_name).groq_model or self.providers.groq.default_model

    def get_ollama_model(self, agent_name: str) -> str:
        return (
            self.get_agent_config(agent_name).ollama_model
            or self.providers.ollama.default_model
        )


def load_agent_settings(path: Path = AGENTS_TOML_PATH) -> AgentSettings:
    """Parse an agents.toml file; a missing file yields all defaults."""
    if not path.exists():
        return AgentSettings()
    with path.open("rb") as f:
        return AgentSettings.model_validate(tomllib.load(f))


@lru_cache(maxsize=1)
def get_agent_settings() -> AgentSettings:
    """Process-wide agents.toml settings (read once)."""
    return load_agent_settings()


# ---------------------------------------------------------------------------
# Environment (.env)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Empty key = no-credentials mode: every model call returns its default
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    groq_api_key: str = ""

    # LangSmith tracing
    langchain_tracing_v2: bool = False
    langchain_api_key: str | None = None
    langchain_project: str = "surveyq"

    # LOG_JSON=true renders one JSON object per line
    log_level: str = "INFO"
    log_json: bool = False

    # Comma-separated origins for the API's CORS middleware
    surveyq_cors_origins: str = ""

    @property
    def has_model_credentials(self) -> bool:
        return bool(self.openrouter_api_key.strip())

    def tracing_env(self) -> dict[str, str]:
        """LangSmith variables langchain-core reads from os.environ."""
        if not self.langchain_tracing_v2:
            return {}
        env = {"LANGCHAIN_TRACING_V2": "true", "LANGCHAIN_PROJECT": self.langchain_project}
        if self.langchain_api_key:
            env["LANGCHAIN_API_KEY"] = self.langchain_api_key
        return env


def get_settings() -> Settings:
    """Load environment settings and export the LangSmith variables, if enabled."""
    settings = Settings()
    for key, value in settings.tracing_env().items():
        os.environ.setdefault(key, value)
    return settings
