"""Environment-driven application configuration."""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

from .orchestrator import DEFAULT_MAX_ITERATIONS
from .providers import DEMO_PROVIDER_ID
from .storage import InMemoryStore, JSONFileStore, KeyValueStore

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHAT_STREAM_"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {raw!r}, using {default}")
        return default


class AppConfig:
    def __init__(
        self,
        provider: str = DEMO_PROVIDER_ID,
        model: str = "demo_model",
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        retry_delay: float = 0.0,
        data_dir: Optional[str] = None,
        log_level: str = "INFO",
    ):
        self.provider = provider
        self.model = model
        self.max_iterations = max(1, max_iterations)
        self.retry_delay = max(0.0, retry_delay)
        self.data_dir = data_dir
        self.log_level = log_level.upper()

    def __repr__(self):
        return (
            f"AppConfig(provider={self.provider!r}, model={self.model!r}, "
            f"max_iterations={self.max_iterations}, retry_delay={self.retry_delay}, "
            f"data_dir={self.data_dir!r}, log_level={self.log_level!r})"
        )

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "AppConfig":
        """Build a config from ``CHAT_STREAM_*`` variables (and ``.env``)."""
        if dotenv:
            load_dotenv()
        return cls(
            provider=os.getenv(f"{ENV_PREFIX}PROVIDER", DEMO_PROVIDER_ID),
            model=os.getenv(f"{ENV_PREFIX}MODEL", "demo_model"),
            max_iterations=_env_int(f"{ENV_PREFIX}MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS),
            retry_delay=_env_float(f"{ENV_PREFIX}RETRY_DELAY", 0.0),
            data_dir=os.getenv(f"{ENV_PREFIX}DATA_DIR") or None,
            log_level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO"),
        )

    def create_store(self) -> KeyValueStore:
        if self.data_dir:
            logger.info(f"Storing chats in {self.data_dir}")
            return JSONFileStore(self.data_dir)
        return InMemoryStore()
