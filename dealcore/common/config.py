"""
Application configuration using Pydantic Settings
Reads from environment variables and .env file

Matching thresholds are business rules shared by the entity-resolution path
and the chart-of-accounts path. They live in one MatchThresholds object so
both paths read the same numbers.
"""
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConflictPolicy(str, Enum):
    """How a disagreeing correction treats an established global mapping"""
    FIRST_WRITER_WINS = "first_writer_wins"   # Later corrections only reinforce
    OVERRIDE_AFTER_N = "override_after_n"     # N agreeing challengers replace it


class MatchThresholds(BaseModel):
    """Load-bearing cutoffs for facility matching and COA classification"""

    # Entity resolution (blended score weights)
    name_weight: float = 0.50
    city_weight: float = 0.25
    bed_weight: float = 0.25
    city_match_cutoff: float = 0.80

    # Entity resolution decision ladder
    possible_floor: float = 0.50
    accept_threshold: float = 0.70      # exclusive
    auto_verify_threshold: float = 0.90  # exclusive
    alternatives_limit: int = 5

    # Registry cache
    registry_ttl_days: int = 7

    # Static taxonomy ladder
    exact_key_confidence: float = 0.95
    synonym_confidence: float = 0.90
    partial_confidence: float = 0.75
    category_confidence: float = 0.50

    # Guesses offered for unmapped line items
    guess_overlap_weight: float = 0.70
    guess_partial_confidence: float = 0.60
    guess_limit: int = 5

    # Orchestrator gates
    static_accept_threshold: float = 0.70
    exact_method_cutoff: float = 0.90
    learned_min_confidence: float = 0.75

    # Learned mapping confidences
    learned_deal_exact: float = 0.95
    learned_deal_partial: float = 0.80
    learned_global_exact: float = 0.90
    learned_global_partial: float = 0.70
    reinforcement_factor: float = 1.05
    learned_confidence_cap: float = 0.98
    suggestion_limit: int = 5

    # Global tier conflict handling
    global_conflict_policy: GlobalConflictPolicy = GlobalConflictPolicy.FIRST_WRITER_WINS
    global_override_threshold: int = 3


class Settings(BaseSettings):
    """Application settings from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    # Database
    db_user: str = Field(default="dealcore", alias="DB_USER")
    db_password: str = Field(default="dealcore", alias="DB_PASSWORD")
    db_name: str = Field(default="dealcore", alias="DB_NAME")
    db_host: str = Field(default="postgres", alias="DB_HOST")
    db_port: int = Field(default=5432, alias="DB_PORT")
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")

    @property
    def database_url(self) -> str:
        """Construct database URL"""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Redis / Celery
    redis_url: str = Field(default="redis://redis:6379/0", alias="REDIS_URL")
    celery_broker_url: str = Field(default="redis://redis:6379/1", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="redis://redis:6379/2", alias="CELERY_RESULT_BACKEND")

    # Application
    environment: str = Field(default="production", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CMS provider registry (data.cms.gov)
    cms_api_base: str = Field(default="https://data.cms.gov/data-api/v1/dataset", alias="CMS_API_BASE")
    cms_provider_dataset: str = Field(default="4pq5-n9py", alias="CMS_PROVIDER_DATASET")
    cms_penalties_dataset: str = Field(default="g6vv-u9sr", alias="CMS_PENALTIES_DATASET")
    cms_deficiencies_dataset: str = Field(default="r5ix-sfxw", alias="CMS_DEFICIENCIES_DATASET")
    cms_request_timeout: float = Field(default=15.0, alias="CMS_REQUEST_TIMEOUT")
    cms_max_concurrent_requests: int = Field(default=4, alias="CMS_MAX_CONCURRENT_REQUESTS")
    cms_search_limit: int = Field(default=20, alias="CMS_SEARCH_LIMIT")

    # Matching rules
    matching: MatchThresholds = Field(default_factory=MatchThresholds)

    # Monitoring
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    # Development
    debug: bool = Field(default=False, alias="DEBUG")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment"""
        valid_envs = ["development", "staging", "production", "test"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT must be one of {valid_envs}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
