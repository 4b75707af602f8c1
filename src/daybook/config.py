"""Configuration for Daybook."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from pydantic_ai.settings import ModelSettings

DEFAULT_API_URL = "http://localhost:11434/v1/"
DEFAULT_MODEL = "gemma3n:latest"
DEFAULT_API_KEY = "ollama"  # Required by the SDK, ignored by local servers

# Model settings for the different agents.
# `timeout` is the client-side deadline in seconds; absent means no deadline.

PLANNER_SETTINGS: ModelSettings = {
    "temperature": 0.0,
    "timeout": 30.0,
}

RERANK_SETTINGS: ModelSettings = {
    "temperature": 0.0,
    "timeout": 60.0,
}

SUMMARY_SETTINGS: ModelSettings = {
    "temperature": 0.2,
    "timeout": 180.0,
}

REPORT_SETTINGS: ModelSettings = {
    "temperature": 0.1,
    "timeout": 180.0,
}

# No deadline for bulk import
IMPORT_SETTINGS: ModelSettings = {
    "temperature": 0.0,
}

# Search pipeline limits
CANDIDATE_LIMIT = 200
RERANK_BATCH_SIZE = 10
RERANK_FALLBACK_COUNT = 15
SYNTHESIS_LIMIT = 20


@dataclass(frozen=True)
class ModelConfig:
    """Connection details for the OpenAI-compatible chat endpoint."""

    endpoint: str = DEFAULT_API_URL
    model: str = DEFAULT_MODEL
    api_key: str = DEFAULT_API_KEY

    @classmethod
    def from_env(cls) -> "ModelConfig":
        """Build a config from environment variables (and `.env`, if present)."""
        load_dotenv()
        return cls(
            endpoint=os.environ.get("LLM_API_URL") or DEFAULT_API_URL,
            model=os.environ.get("LLM_MODEL") or DEFAULT_MODEL,
            api_key=os.environ.get("LLM_API_KEY") or DEFAULT_API_KEY,
        )


def get_data_dir() -> Path:
    """Get the data directory path."""
    return Path(os.environ.get("DAYBOOK_DATA_DIR", "data"))
