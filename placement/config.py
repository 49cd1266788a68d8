"""Application configuration module."""

from typing import Optional
from pydantic import BaseSettings, validator


class Settings(BaseSettings):
    """Application settings."""
    
    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./placement.db"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    
    # Storage backend used by the placement test service ("memory" or "sql")
    STORAGE_BACKEND: str = "memory"
    
    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: Optional[str] = None
    
    # API settings
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "Placement Test"
    
    # Assessment settings
    PASSING_PERCENTAGE: float = 70.0
    TOTAL_LEVELS: int = 12
    QUESTIONS_PER_LEVEL: int = 10
    QUESTION_BANK_PATH: Optional[str] = None
    
    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()
    
    @validator("STORAGE_BACKEND")
    def validate_storage_backend(cls, v):
        """Validate storage backend name"""
        if v.lower() not in ("memory", "sql"):
            raise ValueError(f"Invalid storage backend: {v}. Must be 'memory' or 'sql'")
        return v.lower()
    
    @validator("PASSING_PERCENTAGE")
    def validate_passing_percentage(cls, v):
        """Validate the pass threshold is a percentage"""
        if not 0 <= v <= 100:
            raise ValueError(f"Invalid passing percentage: {v}. Must be between 0 and 100")
        return v
    
    class Config:
        """Pydantic settings config."""
        env_file = ".env"
        case_sensitive = True

# Create global settings instance
settings = Settings()
