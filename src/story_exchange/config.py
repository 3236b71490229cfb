from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchingConfig(BaseModel):
    """
    Tunable parameters of the similarity matching pipeline.

    Every threshold, boost and default used while matching a submission
    against the corpus lives here, so call sites never carry literals.
    """

    similarity_threshold: float = Field(default=0.3, ge=-1.0, le=2.0)
    archetype_boost: float = Field(default=0.10, ge=0.0)
    emotion_boost: float = Field(default=0.05, ge=0.0)

    default_archetype: str = "Self"
    default_emotion_tone: str = "reflective"

    # Rewrites that copy this many consecutive source words are re-requested
    verbatim_window: int = Field(default=8, ge=3)
    rewrite_attempts: int = Field(default=2, ge=1)

    model_config = ConfigDict(frozen=True)


class Settings(BaseSettings):
    # Two privilege tiers: end-user scoped and service scoped
    database_url: str
    service_database_url: Optional[str] = None
    auto_create_schema: bool = True

    llm_api_key: SecretStr
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_model: str = "llama-3.3-70b-versatile"
    llm_timeout: float = 60.0

    embedding_provider: Literal["hosted", "local"] = "hosted"
    embedding_api_key: Optional[SecretStr] = None
    embedding_base_url: str = "https://api.jina.ai/v1/embeddings"
    embedding_model: str = "jina-embeddings-v3"
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    speech_api_key: Optional[SecretStr] = None
    speech_base_url: str = "https://api.openai.com/v1/audio/transcriptions"
    speech_model: str = "whisper-1"

    # Tokens are issued by the backing auth service; we only verify them
    auth_jwt_secret: SecretStr
    auth_jwt_audience: str = "authenticated"
    jwt_algo: str = "HS256"

    admin_api_key: Optional[SecretStr] = None

    feed_base_language: str = "en"
    log_level: str = "INFO"

    matching: MatchingConfig = MatchingConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @property
    def effective_service_database_url(self) -> str:
        return self.service_database_url or self.database_url


settings = Settings()
