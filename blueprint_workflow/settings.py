"""Runtime settings for the workflow orchestrator."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class OrchestratorSettings(BaseSettings):
    """
    Orchestrator runtime settings.
    Loaded from the environment (``WORKFLOW_*``) or a local .env file.
    """

    resume_poll_interval: float = Field(default=1.0, gt=0)
    resume_timeout: float = Field(default=3600.0, gt=0)
    log_level: str = Field(default="INFO")

    model_config = {
        "env_prefix": "WORKFLOW_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> OrchestratorSettings:
    """Return cached orchestrator settings."""
    return OrchestratorSettings()
