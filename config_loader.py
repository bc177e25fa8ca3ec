"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict

import yaml

from models import ImportMode, OrphanPolicy

DEFAULT_CONFIG: Dict[str, Any] = {
    'import': {
        'mode': ImportMode.SPACE.value,
        'workspace_id': 'default',
        'creator_id': 'importer',
        'space_id': None,
        'orphan_policy': OrphanPolicy.SKIP.value,
        'max_workers': 4,
        'backlink_batch_size': 100,
        'compensate_on_failure': True,
        'admin_user_ids': [],
        'progress_bars': True,
    },
    'database': {
        'path': './confluence_import.db',
    },
    'attachments': {
        'storage_dir': './storage',
        'max_file_size': None,
        'skip_file_types': [],
    },
    'logging': {
        'level': 'INFO',
        'file': None,
        'format': None,
        'date_format': None,
    },
    'report': {
        'path': None,
    },
}

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        # Substitute environment variables recursively
        config_data = cls._substitute_env_vars_recursive(config_data)

        return config_data

    @classmethod
    def with_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``config`` with every missing key taken from DEFAULT_CONFIG."""
        return _deep_merge(DEFAULT_CONFIG, config or {})

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        mode = get_nested(config, 'import.mode', ImportMode.SPACE.value)
        try:
            ImportMode(mode)
        except ValueError:
            raise ValueError(f"import.mode must be one of: {[m.value for m in ImportMode]}")

        orphan_policy = get_nested(config, 'import.orphan_policy', OrphanPolicy.SKIP.value)
        try:
            OrphanPolicy(orphan_policy)
        except ValueError:
            raise ValueError(f"import.orphan_policy must be one of: {[p.value for p in OrphanPolicy]}")

        cls._validate_required_field(config, 'import.workspace_id')
        cls._validate_required_field(config, 'import.creator_id')

        if mode == ImportMode.PAGES.value:
            cls._validate_required_field(config, 'import.space_id')

        max_workers = get_nested(config, 'import.max_workers', 4)
        if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
            raise ValueError("import.max_workers must be a positive integer")

        batch_size = get_nested(config, 'import.backlink_batch_size', 100)
        if not isinstance(batch_size, int) or isinstance(batch_size, bool) or batch_size < 1:
            raise ValueError("import.backlink_batch_size must be a positive integer")

        for flag in ('import.compensate_on_failure', 'import.progress_bars'):
            value = get_nested(config, flag, True)
            if not isinstance(value, bool):
                raise ValueError(f"{flag} must be a boolean")

        admins = get_nested(config, 'import.admin_user_ids', [])
        if not isinstance(admins, list) or not all(isinstance(a, str) for a in admins):
            raise ValueError("import.admin_user_ids must be a list of user ids")

        cls._validate_required_field(config, 'database.path')
        cls._validate_required_field(config, 'attachments.storage_dir')

        storage_dir = get_nested(config, 'attachments.storage_dir')
        if os.path.exists(storage_dir) and not os.path.isdir(storage_dir):
            raise ValueError(f"attachments.storage_dir '{storage_dir}' is not a directory")

        max_file_size = get_nested(config, 'attachments.max_file_size')
        if max_file_size is not None and (
            not isinstance(max_file_size, int) or isinstance(max_file_size, bool) or max_file_size <= 0
        ):
            raise ValueError("attachments.max_file_size must be a positive integer (bytes)")

        skip_types = get_nested(config, 'attachments.skip_file_types', [])
        if not isinstance(skip_types, list) or not all(isinstance(t, str) for t in skip_types):
            raise ValueError("attachments.skip_file_types must be a list of file extensions")

        level = get_nested(config, 'logging.level', 'INFO')
        if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {LOG_LEVELS}")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        # Ensure nested dictionaries exist
        for section in ('import', 'database', 'attachments', 'logging', 'report'):
            if not isinstance(merged.get(section), dict):
                merged[section] = {}

        if getattr(args, 'mode', None):
            merged['import']['mode'] = args.mode

        if getattr(args, 'space_id', None):
            merged['import']['space_id'] = args.space_id

        if getattr(args, 'orphan_policy', None):
            merged['import']['orphan_policy'] = args.orphan_policy

        if getattr(args, 'database', None):
            merged['database']['path'] = args.database

        if getattr(args, 'storage_dir', None):
            merged['attachments']['storage_dir'] = args.storage_dir

        if getattr(args, 'report_path', None):
            merged['report']['path'] = args.report_path

        if getattr(args, 'no_progress', False):
            merged['import']['progress_bars'] = False

        verbose = getattr(args, 'verbose', 0) or 0
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1 and str(merged['logging'].get('level') or 'INFO').upper() != 'DEBUG':
            merged['logging']['level'] = 'INFO'

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            var_name = match.group(1)
            env_value = os.getenv(var_name)
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config_section, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        # Check for unsubstituted environment variables
        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "database.path")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'DEFAULT_CONFIG', 'get_nested']
