from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, validator
from dotenv import load_dotenv

load_dotenv("src/journeyheal/.env")

class Settings(BaseSettings):
    # Learned pattern store (LLKB)
    LLKB_ROOT: str = Field(default=".artk/llkb", description="Directory holding learned-patterns.json")
    LLKB_MIN_CONFIDENCE: float = Field(default=0.7, description="Minimum confidence for learned pattern matches")
    LLKB_ENABLED: bool = Field(default=True, description="Enable/disable learned pattern lookup during mapping")

    # Healing
    HEALING_ENABLED: bool = Field(default=True, description="Global kill switch for automatic healing")
    HEALING_CONFIG_PATH: str = Field(default="config/healing.yaml", description="Path to the healing policy file")
    HEALING_LOG_DIR: str = Field(default=".artk/heal-logs", description="Directory for per-journey healing logs")

    # Step mapping
    GLOSSARY_PATH: Optional[str] = Field(default=None, description="Optional user glossary merged over the defaults")

    # External test runner
    RUNNER_COMMAND: str = Field(default="npx playwright test", description="Command used to invoke the browser-test runner")
    TEST_TIMEOUT_MS: int = Field(default=30000, description="Per-test timeout passed to the runner (ms)")
    RUN_TIMEOUT_MULTIPLIER: int = Field(default=10, description="Whole-run subprocess timeout as a multiple of the per-test timeout")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Log level for the healing loggers")
    LOG_DIR: str = Field(default="logs", description="Directory for rotating log files")

    @validator('LLKB_MIN_CONFIDENCE')
    def validate_min_confidence(cls, v):
        """Validate that LLKB_MIN_CONFIDENCE is between 0 and 1."""
        if v < 0.0 or v > 1.0:
            raise ValueError(f"LLKB_MIN_CONFIDENCE must be between 0.0 and 1.0, got {v}")
        return v

    @validator('TEST_TIMEOUT_MS')
    def validate_test_timeout(cls, v):
        """Validate that TEST_TIMEOUT_MS is positive."""
        if v <= 0:
            raise ValueError(f"TEST_TIMEOUT_MS must be positive, got {v}")
        return v

    @validator('RUN_TIMEOUT_MULTIPLIER')
    def validate_run_multiplier(cls, v):
        """Validate that RUN_TIMEOUT_MULTIPLIER is between 1 and 100."""
        if v < 1 or v > 100:
            raise ValueError(f"RUN_TIMEOUT_MULTIPLIER must be between 1 and 100, got {v}")
        return v

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Validate that LOG_LEVEL is a standard logging level."""
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got '{v}'")
        return v.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'allow'  # Allow extra fields from .env file

settings = Settings()
