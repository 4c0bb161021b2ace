"""Application configuration settings.

This module centralizes all configuration values loaded from:
1. config.base.yaml (shared defaults)
2. config.{env}.yaml (environment-specific: dev, staging, prod)
3. config.local.yaml (local overrides, git-ignored)
4. Environment variables (highest priority)

Default environment is 'development' (DEV).

Usage:
    from config.settings import config

    # Access config values
    limit = config.MESSAGE_MAX_LENGTH
    debug = config.DEBUG

    # Check current environment
    env = config.ENV  # 'development', 'staging', or 'production'
"""
import os
from pathlib import Path
from typing import Optional, Any, Dict
import yaml


# Environment name mappings
ENV_ALIASES = {
    'dev': 'development',
    'development': 'development',
    'staging': 'staging',
    'stage': 'staging',
    'prod': 'production',
    'production': 'production',
}

# Default environment
DEFAULT_ENV = 'development'


class Config:
    """Centralized application configuration.

    Loads configuration from YAML files based on environment.

    Priority (highest to lowest):
    1. Environment variables
    2. config.local.yaml (for local development overrides)
    3. config.{env}.yaml (environment-specific: dev, staging, prod)
    4. config.base.yaml (shared defaults)

    Environment is determined by:
    1. FLASK_ENV environment variable
    2. APP_ENV environment variable
    3. Default: 'development'
    """

    _config_data: Dict[str, Any] = {}
    _loaded: bool = False
    _current_env: str = DEFAULT_ENV

    def __init__(self):
        if not Config._loaded:
            self._load_config()

    @classmethod
    def _get_environment(cls) -> str:
        """Determine current environment from env vars or default to dev."""
        env = os.getenv('FLASK_ENV') or os.getenv('APP_ENV') or DEFAULT_ENV
        env = env.lower().strip()
        return ENV_ALIASES.get(env, DEFAULT_ENV)

    def _load_config(self):
        """Load configuration from YAML files based on environment."""
        config_dir = Path(__file__).parent
        Config._current_env = self._get_environment()

        # Start with empty config
        Config._config_data = {}

        # 1. Load base config (shared defaults)
        base_config_path = config_dir / 'config.base.yaml'
        if base_config_path.exists():
            with open(base_config_path, 'r') as f:
                Config._config_data = yaml.safe_load(f) or {}

        # 2. Load environment-specific config
        env_config_map = {
            'development': 'config.dev.yaml',
            'staging': 'config.staging.yaml',
            'production': 'config.prod.yaml',
        }
        env_config_file = env_config_map.get(Config._current_env, 'config.dev.yaml')
        env_config_path = config_dir / env_config_file

        if env_config_path.exists():
            with open(env_config_path, 'r') as f:
                env_data = yaml.safe_load(f) or {}
                Config._config_data = self._deep_merge(Config._config_data, env_data)

        # 3. Load local overrides (not in git)
        local_config_path = config_dir / 'config.local.yaml'
        if local_config_path.exists():
            with open(local_config_path, 'r') as f:
                local_data = yaml.safe_load(f) or {}
                Config._config_data = self._deep_merge(Config._config_data, local_data)

        Config._loaded = True

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_yaml_value(self, *keys, default=None) -> Any:
        """Get a nested value from YAML config."""
        value = Config._config_data
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @classmethod
    def reload(cls):
        """Reload configuration (useful for testing)."""
        cls._loaded = False
        cls._config_data = {}
        instance = cls()
        return instance

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _get_bool(self, env_name: str, *keys, default: bool = False) -> bool:
        env_val = os.getenv(env_name, '').lower()
        if env_val:
            return env_val in ('1', 'true', 'yes')
        return bool(self._get_yaml_value(*keys, default=default))

    def _get_int(self, env_name: str, *keys, default: int = 0) -> int:
        env_val = os.getenv(env_name)
        if env_val:
            return int(env_val)
        return int(self._get_yaml_value(*keys, default=default))

    # ==========================================================================
    # Environment Info
    # ==========================================================================

    @property
    def IS_PROD(self) -> bool:
        """Check if running in production environment."""
        return Config._current_env == 'production'

    # ==========================================================================
    # Application Settings
    # ==========================================================================

    @property
    def DEBUG(self) -> bool:
        """Flask debug mode."""
        return self._get_bool('FLASK_DEBUG', 'app', 'debug', default=False)

    @property
    def ENV(self) -> str:
        """Application environment (development, staging, production)."""
        return Config._current_env

    @property
    def HOST(self) -> str:
        """Server bind address."""
        return os.getenv('HOST') or self._get_yaml_value('app', 'host', default='0.0.0.0')

    @property
    def PORT(self) -> int:
        """Server port."""
        return self._get_int('PORT', 'app', 'port', default=5000)

    @property
    def APP_NAME(self) -> str:
        """Application name."""
        return os.getenv('APP_NAME') or self._get_yaml_value('app', 'name', default='Chat Server')

    @property
    def APP_VERSION(self) -> str:
        """Application version."""
        return self._get_yaml_value('app', 'version', default='1.0.0')

    # ==========================================================================
    # Security Settings
    # ==========================================================================

    @property
    def JWT_SECRET(self) -> Optional[str]:
        """JWT secret key for token signing. Required in production."""
        return os.getenv('JWT_SECRET') or self._get_yaml_value('security', 'jwt', 'secret')

    @property
    def JWT_ALGORITHM(self) -> str:
        """JWT algorithm (default: HS256)."""
        return os.getenv('JWT_ALGORITHM') or self._get_yaml_value('security', 'jwt', 'algorithm', default='HS256')

    @property
    def ACCESS_TOKEN_EXPIRE_MINUTES(self) -> int:
        """Access token expiry in minutes."""
        return self._get_int('ACCESS_TOKEN_MINUTES', 'security', 'jwt', 'access_token_expire_minutes', default=10080)

    # ==========================================================================
    # Database Settings
    # ==========================================================================

    @property
    def MONGO_URI(self) -> str:
        """MongoDB connection URI."""
        return os.getenv('MONGO_URI') or self._get_yaml_value('database', 'mongo_uri', default='mongodb://localhost:27017')

    @property
    def CHAT_DB_NAME(self) -> str:
        """Chat database name."""
        return os.getenv('CHAT_DB_NAME') or self._get_yaml_value('database', 'databases', 'chat', default='chat_db')

    # ==========================================================================
    # Messaging Limits
    # ==========================================================================

    @property
    def MESSAGE_MAX_LENGTH(self) -> int:
        """Maximum characters in a message body."""
        return self._get_int('MESSAGE_MAX_LENGTH', 'messaging', 'message_max_length', default=1000)

    @property
    def GROUP_NAME_MAX_LENGTH(self) -> int:
        """Maximum characters in a group conversation name."""
        return self._get_int('GROUP_NAME_MAX_LENGTH', 'messaging', 'group_name_max_length', default=50)

    @property
    def DESCRIPTION_MAX_LENGTH(self) -> int:
        """Maximum characters in a group conversation description."""
        return self._get_int('DESCRIPTION_MAX_LENGTH', 'messaging', 'description_max_length', default=200)

    @property
    def MESSAGES_PAGE_SIZE(self) -> int:
        """Default page size for message history."""
        return self._get_int('MESSAGES_PAGE_SIZE', 'messaging', 'page_size', default=50)

    @property
    def REACTION_TOGGLE_MAX_ATTEMPTS(self) -> int:
        """Conditional update attempts before a reaction toggle gives up."""
        return self._get_int('REACTION_TOGGLE_MAX_ATTEMPTS', 'messaging', 'reaction_toggle_max_attempts', default=5)

    # ==========================================================================
    # CORS Settings
    # ==========================================================================

    @property
    def CORS_ORIGINS(self) -> str:
        """Allowed CORS origins."""
        return os.getenv('CORS_ORIGINS') or self._get_yaml_value('cors', 'origins', default='*')

    @property
    def CORS_ORIGINS_LIST(self) -> list:
        """Get CORS origins as a list."""
        origins = self.CORS_ORIGINS
        if origins == '*':
            return ['*']
        return [o.strip() for o in origins.split(',') if o.strip()]

    # ==========================================================================
    # Logging Settings
    # ==========================================================================

    @property
    def LOG_LEVEL(self) -> str:
        """Logging level."""
        env_val = os.getenv('LOG_LEVEL')
        if env_val:
            return env_val.upper()
        if self.LOG_DEBUG:
            return 'DEBUG'
        return self._get_yaml_value('logging', 'level', default='INFO')

    @property
    def LOG_DEBUG(self) -> bool:
        """Enable debug logging (verbose)."""
        return self._get_bool('LOG_DEBUG', 'logging', 'debug', default=False)

    @property
    def LOG_PATTERN(self) -> str:
        """Log format pattern."""
        return os.getenv('LOG_PATTERN') or self._get_yaml_value('logging', 'pattern', default='%(message)s')

    @property
    def LOG_INCLUDE_DATETIME(self) -> bool:
        """Include datetime in logs."""
        return self._get_bool('LOG_INCLUDE_DATETIME', 'logging', 'include_datetime', default=False)

    @property
    def LOG_INCLUDE_NAME(self) -> bool:
        """Include logger name in logs."""
        return self._get_bool('LOG_INCLUDE_NAME', 'logging', 'include_name', default=False)

    @property
    def LOG_INCLUDE_LEVEL(self) -> bool:
        """Include log level in logs."""
        return self._get_bool('LOG_INCLUDE_LEVEL', 'logging', 'include_level', default=True)

    @property
    def LOG_DATE_FORMAT(self) -> str:
        """Date format for logs."""
        return self._get_yaml_value('logging', 'date_format', default='%H:%M:%S')

    @property
    def LOG_FORMAT(self) -> str:
        """Build log format string based on config options."""
        pattern = self.LOG_PATTERN
        if pattern and pattern != '%(message)s':
            return pattern

        parts = []
        if self.LOG_INCLUDE_DATETIME:
            parts.append('%(asctime)s')
        if self.LOG_INCLUDE_NAME:
            parts.append('%(name)s')
        if self.LOG_INCLUDE_LEVEL:
            parts.append('%(levelname)s')
        parts.append('%(message)s')

        return ' - '.join(parts) if len(parts) > 1 else parts[0]

    # ==========================================================================
    # Notification / Outbound Settings
    # ==========================================================================

    @property
    def OUTBOUND_WORKER_ENABLED(self) -> bool:
        """Whether the outbound event/notification worker thread is started."""
        return self._get_bool('OUTBOUND_WORKER_ENABLED', 'notification', 'worker_enabled', default=True)

    @property
    def OUTBOUND_QUEUE_POLL_SECONDS(self) -> int:
        """Seconds the outbound worker blocks on an empty queue before re-checking."""
        return self._get_int('OUTBOUND_QUEUE_POLL_SECONDS', 'notification', 'poll_seconds', default=1)

    @property
    def NOTIFICATION_MESSAGE_MAX_LENGTH(self) -> int:
        """Maximum characters stored in a notification message."""
        return self._get_int('NOTIFICATION_MESSAGE_MAX_LENGTH', 'notification', 'message_max_length', default=200)

    # ==========================================================================
    # Validation Methods
    # ==========================================================================

    def validate_required(self) -> None:
        """Validate that required configuration values are set.

        Raises RuntimeError if required values are missing in production.
        """
        errors = []

        if self.IS_PROD:
            if not self.JWT_SECRET:
                errors.append('JWT_SECRET environment variable is required in production')
            if not self.MONGO_URI or self.MONGO_URI == 'mongodb://localhost:27017':
                errors.append('MONGO_URI should be set to production database in production')
            if self.CORS_ORIGINS == '*':
                errors.append('CORS_ORIGINS should not be "*" in production')

        if errors:
            raise RuntimeError('Configuration errors:\n' + '\n'.join(f'  - {e}' for e in errors))


# Singleton instance
config = Config()
