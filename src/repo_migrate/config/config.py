"""Configuration management for Repository Migration Tool."""

from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator
import yaml
from dotenv import load_dotenv

from ..exceptions import ConfigError

AZURE_DEVOPS_URL = 'https://dev.azure.com'


class SourceHostConfig(BaseModel):
    """Configuration for the source GitHub host."""

    api_url: str = Field(
        default='https://api.github.com', description='GitHub API base URL'
    )
    token: Optional[str] = Field(default=None, description='Personal access token')
    org: Optional[str] = Field(
        default=None,
        description='Organization to list; the token owner is listed if unset',
    )
    timeout: int = Field(default=30, description='Request timeout in seconds')
    per_page: int = Field(default=100, description='Page size for listing')

    @field_validator('api_url')
    @classmethod
    def validate_url(cls, v):
        """Validate API URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @field_validator('per_page')
    @classmethod
    def validate_per_page(cls, v):
        if not 1 <= v <= 100:
            raise ValueError('per_page must be between 1 and 100')
        return v


class DestinationHostConfig(BaseModel):
    """Configuration for the destination Azure DevOps organization."""

    org: str = Field(
        ..., description='Organization name or URL (https://dev.azure.com/<org>)'
    )
    project: str = Field(..., description='Project that receives the repositories')
    token: Optional[str] = Field(default=None, description='Personal access token')
    api_version: str = Field(default='7.0', description='REST API version')
    timeout: int = Field(default=30, description='Request timeout in seconds')

    @field_validator('org')
    @classmethod
    def validate_org(cls, v):
        """Accept either a bare organization name or its URL."""
        v = v.strip().rstrip('/')
        if not v:
            raise ValueError('Destination organization must not be empty')
        if v.startswith(('http://', 'https://')):
            return v
        return f'{AZURE_DEVOPS_URL}/{v}'

    @field_validator('project')
    @classmethod
    def validate_project(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Destination project must not be empty')
        return v

    @property
    def org_url(self) -> str:
        return self.org


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    repos: Optional[List[str]] = Field(
        default=None,
        description='Explicit repositories to migrate; listed from the API if unset',
    )
    concurrency: Optional[int] = Field(
        default=None, description='Concurrent transfers (default: CPU based)'
    )
    max_attempts: int = Field(
        default=2, description='Attempts per repository for transient failures'
    )
    dry_run: bool = Field(default=False, description='Perform dry run without changes')

    @field_validator('concurrency')
    @classmethod
    def validate_concurrency(cls, v):
        """Validate concurrency is positive."""
        if v is not None and v <= 0:
            raise ValueError('Concurrency must be positive')
        return v

    @field_validator('max_attempts')
    @classmethod
    def validate_max_attempts(cls, v):
        if v <= 0:
            raise ValueError('Max attempts must be positive')
        return v


class RetryConfig(BaseModel):
    """Backoff policy for transient API and git failures."""

    attempts: int = Field(default=3, description='Attempts per operation')
    base_delay: float = Field(default=0.5, description='First backoff in seconds')
    factor: float = Field(default=2.0, description='Backoff multiplier')
    max_delay: float = Field(default=5.0, description='Backoff cap in seconds')

    @field_validator('attempts')
    @classmethod
    def validate_attempts(cls, v):
        if v <= 0:
            raise ValueError('Retry attempts must be positive')
        return v

    @field_validator('base_delay', 'max_delay')
    @classmethod
    def validate_delays(cls, v):
        if v < 0:
            raise ValueError('Retry delays must not be negative')
        return v


class GitConfig(BaseModel):
    """Git operations configuration."""

    executable: str = Field(default='git', description='Git binary to invoke')
    temp_dir: Optional[str] = Field(
        default=None,
        description='Custom temporary directory for git operations. If not specified, uses system temp directory.',
    )
    timeout: int = Field(
        default=600, description='Git operation timeout in seconds (default: 10 minutes)'
    )
    keep_clones: bool = Field(
        default=False, description='Keep mirror clones after a successful migration'
    )
    retention_dir: str = Field(
        default='clones', description='Directory that receives kept clones'
    )

    @field_validator('temp_dir')
    @classmethod
    def validate_temp_dir(cls, v):
        """Validate temp directory path."""
        if v is not None and not Path(v).is_absolute():
            raise ValueError('temp_dir must be an absolute path')
        return v

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Git timeout must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for Repository Migration Tool."""

    model_config = ConfigDict(extra='forbid')

    source: SourceHostConfig = Field(
        default_factory=SourceHostConfig, description='Source GitHub host'
    )
    destination: DestinationHostConfig = Field(
        ..., description='Destination Azure DevOps project'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description='Retry and backoff settings'
    )
    git: GitConfig = Field(
        default_factory=GitConfig, description='Git operations settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    @classmethod
    def from_file(
        cls, config_path: str, overrides: Optional[Dict[str, Any]] = None
    ) -> 'Config':
        """Load configuration from YAML file.

        Raises:
            ConfigError: If the file is missing, unreadable or invalid
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise ConfigError(f'Configuration file not found: {config_path}')

        return cls._build(cls._read_file(config_file), overrides)

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None) -> 'Config':
        """Load configuration from environment variables."""
        return cls._build(cls._env_data(), overrides)

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> 'Config':
        """Load configuration from a YAML file, or the environment if none is given.

        Args:
            config_path: YAML configuration file
            overrides: Nested values that win over the file or environment
                (None values are ignored)

        Raises:
            ConfigError: If the result is incomplete or invalid
        """
        if config_path:
            return cls.from_file(config_path, overrides)
        return cls.from_env(overrides)

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> 'Config':
        """Build configuration from a dictionary, raising ConfigError on failure."""
        try:
            return cls(**config_data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f'Invalid configuration: {e}') from e

    @classmethod
    def _build(
        cls, config_data: Dict[str, Any], overrides: Optional[Dict[str, Any]]
    ) -> 'Config':
        config_data = _merge(config_data, cls._remove_none_values(overrides or {}))
        cls._require_destination(config_data)
        return cls.from_dict(config_data)

    @staticmethod
    def _read_file(config_file: Path) -> Dict[str, Any]:
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f'Invalid YAML in {config_file}: {e}') from e
        if not isinstance(config_data, dict):
            raise ConfigError(f'Configuration file {config_file} must hold a mapping')
        return config_data

    @classmethod
    def _env_data(cls) -> Dict[str, Any]:
        """Configuration values found in the environment (and a .env file)."""
        # Load .env file if it exists
        load_dotenv()

        repos = os.getenv('MIGRATE_REPOS')
        concurrency = os.getenv('MIGRATE_CONCURRENCY')

        try:
            migration = {
                'repos': repos.split(',') if repos else None,
                'concurrency': int(concurrency) if concurrency else None,
                'max_attempts': int(os.getenv('MIGRATE_MAX_ATTEMPTS', 2)),
            }
            git_timeout = int(os.getenv('GIT_TIMEOUT', 600))
        except ValueError as e:
            raise ConfigError(f'Invalid numeric environment variable: {e}') from e

        config_data = {
            'source': {
                'api_url': os.getenv('SOURCE_API_URL'),
                'org': os.getenv('SOURCE_ORG'),
            },
            'destination': {
                'org': os.getenv('DEST_ORG'),
                'project': os.getenv('DEST_PROJECT'),
            },
            'migration': migration,
            'git': {
                'temp_dir': os.getenv('GIT_TEMP_DIR'),
                'timeout': git_timeout,
                'keep_clones': os.getenv('GIT_KEEP_CLONES', 'false').lower() == 'true',
                'retention_dir': os.getenv('GIT_RETENTION_DIR'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values
        return cls._remove_none_values(config_data)

    @staticmethod
    def _require_destination(config_data: Dict[str, Any]) -> None:
        destination = config_data.get('destination') or {}
        if not destination.get('org') or not destination.get('project'):
            raise ConfigError(
                'Destination organization and project are required '
                '(--dest-org/--dest-project, DEST_ORG/DEST_PROJECT or the config file)'
            )

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file.

        Tokens are deliberately absent: they are read from SOURCE_TOKEN and
        DEST_TOKEN so they never land on disk or in process arguments.
        """
        template_config = {
            'source': {
                'api_url': 'https://api.github.com',
                'org': 'your-github-org',
                'timeout': 30,
            },
            'destination': {
                'org': 'your-azure-devops-org',
                'project': 'your-project',
                'api_version': '7.0',
                'timeout': 30,
            },
            'migration': {
                'repos': None,
                'concurrency': 4,
                'max_attempts': 2,
                'dry_run': False,
            },
            'retry': {
                'attempts': 3,
                'base_delay': 0.5,
                'factor': 2.0,
                'max_delay': 5.0,
            },
            'git': {
                'temp_dir': '/tmp/repo-migrate',
                'timeout': 600,
                'keep_clones': False,
                'retention_dir': 'clones',
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``overrides`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged
