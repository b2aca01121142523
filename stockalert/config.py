import asyncio
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dotenv import load_dotenv
from loguru import logger

ENV_FILE = os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env")

# Load environment variables from .env
load_dotenv(dotenv_path=ENV_FILE)

# Environment variables (secrets)
BOT_TOKEN = os.getenv("BOT_TOKEN", "")
ADMIN_CHAT_ID = os.getenv("ADMIN_CHAT_ID", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CONFIG_FILE = os.getenv("CONFIG_FILE", "./configs/default.yaml")

# Alert evaluation constants (fixed, not environment-driven)
ALERT_POLL_INTERVAL_SECONDS = 60
VOLUME_HISTORY_LIMIT = 20
VOLUME_MIN_SAMPLES = 3
QUOTE_FETCH_TIMEOUT_SECONDS = 10


class ConfigLoader:
    """Loads and validates YAML configuration with environment variable substitution."""

    REQUIRED_SECTIONS = ('bot', 'quotes', 'healthcheck')

    def __init__(self, config_path: str):
        self.config_path = Path(config_path)
        self._config: Optional[Dict[str, Any]] = None
        self._load()

    def _load(self):
        """Load YAML config file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._config = yaml.safe_load(f) or {}

        for section in self.REQUIRED_SECTIONS:
            if section not in self._config:
                raise ValueError(f"Missing required config section: {section}")

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get config value by dot-notation path.
        Example: config.get('quotes.timeout_seconds') -> 10
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        # ${VAR} strings are resolved from the environment
        if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
            env_var = value[2:-1]
            return os.getenv(env_var, default)

        return value

    @property
    def raw(self) -> Dict[str, Any]:
        """Get raw config dict."""
        return self._config


# Global config instance (lazy-loaded)
_config_instance: Optional[ConfigLoader] = None


def get_config() -> ConfigLoader:
    """Get global config instance (singleton pattern)."""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigLoader(CONFIG_FILE)
    return _config_instance


def get_bot_version() -> str:
    return get_config().get('bot.version', '1.0.0')


def get_bot_name() -> str:
    return get_config().get('bot.name', 'TWSE Alert Bot')


def get_quote_config() -> Dict[str, Any]:
    """Get quote source config with safe defaults."""
    quote_config = get_config().get('quotes', {})

    if not isinstance(quote_config, dict):
        quote_config = {}

    quote_config.setdefault('base_url', 'https://mis.twse.com.tw/stock/api/getStockInfo.jsp')
    quote_config.setdefault('market', 'tse')

    try:
        timeout = float(quote_config.get('timeout_seconds', QUOTE_FETCH_TIMEOUT_SECONDS))
        if timeout <= 0 or timeout > QUOTE_FETCH_TIMEOUT_SECONDS:
            timeout = QUOTE_FETCH_TIMEOUT_SECONDS
        quote_config['timeout_seconds'] = timeout
    except (ValueError, TypeError):
        quote_config['timeout_seconds'] = QUOTE_FETCH_TIMEOUT_SECONDS

    return quote_config


def get_healthcheck_config() -> Dict[str, Any]:
    hc_config = get_config().get('healthcheck', {})

    if not isinstance(hc_config, dict):
        hc_config = {}

    hc_config.setdefault('enabled', True)
    hc_config.setdefault('host', '0.0.0.0')

    try:
        hc_config['port'] = int(hc_config.get('port', 8080))
    except (ValueError, TypeError):
        hc_config['port'] = 8080

    return hc_config


def get_stock_name_overrides() -> Dict[str, str]:
    names = get_config().get('stocks.names', {})
    if not isinstance(names, dict):
        return {}
    return {str(code): str(name) for code, name in names.items()}


async def wait_for_bot_token(attempts: int = 10, delay: float = 2.0) -> str:
    """
    Wait until BOT_TOKEN is available, re-reading .env on every attempt.

    Some hosts inject secrets a few seconds after the process starts.

    Raises:
        RuntimeError: token still missing after all attempts
    """
    for attempt in range(1, attempts + 1):
        logger.info(f"Loading bot credentials (attempt {attempt}/{attempts})")
        load_dotenv(dotenv_path=ENV_FILE, override=False)
        token = os.getenv("BOT_TOKEN", "").strip()
        if token:
            logger.info("Bot credentials loaded")
            return token

        if attempt < attempts:
            logger.warning(f"BOT_TOKEN not set yet, retrying in {delay:.0f}s...")
            await asyncio.sleep(delay)

    raise RuntimeError("BOT_TOKEN is required but was not set")


if not BOT_TOKEN:
    print("WARNING: BOT_TOKEN not set - notifications will be logged only")

if not ADMIN_CHAT_ID:
    print("WARNING: ADMIN_CHAT_ID not set - operational errors will be logged only")
