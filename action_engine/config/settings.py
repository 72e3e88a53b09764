"""
Environment-aware configuration settings for the action engine.

Supports dev, test, and prod environments with appropriate defaults.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class UnhandledErrorPolicy(str, Enum):
    """
    What happens after an error reaches an Action nobody listens to.
    
    The error is always logged first. RAISE raises UnhandledActionError from
    the emitting call; EXIT raises SystemExit, which stops the event loop.
    """
    
    RAISE = "raise"
    EXIT = "exit"


class Settings(BaseSettings):
    """Main engine settings."""
    
    model_config = SettingsConfigDict(
        env_prefix="ACTION_ENGINE_",
        case_sensitive=False,  # ACTION_ENGINE_LOG_LEVEL and action_engine_log_level both work
        extra="ignore",        # Ignore unknown environment variables
    )
    
    environment: Environment = Field(default=Environment.DEV)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    
    unhandled_error_policy: UnhandledErrorPolicy = Field(
        default=UnhandledErrorPolicy.RAISE,
        description="Escalation applied to errors emitted with no error listener",
    )
    history_limit: int = Field(
        default=100,
        ge=0,
        description="Maximum transition records kept per state machine (0 disables history)",
    )
    
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str | Environment) -> Environment:
        """Validate and convert environment string to enum."""
        if isinstance(v, Environment):
            return v
        return Environment(v.lower())
    
    @field_validator("unhandled_error_policy", mode="before")
    @classmethod
    def validate_policy(cls, v: str | UnhandledErrorPolicy) -> UnhandledErrorPolicy:
        if isinstance(v, UnhandledErrorPolicy):
            return v
        return UnhandledErrorPolicy(v.lower())
    
    @property
    def is_production(self) -> bool:
        """Check if running in production mode; disables forced debug logging."""
        return self.environment == Environment.PROD


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
