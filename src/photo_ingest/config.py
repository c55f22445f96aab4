import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .models import IngestConfig

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")

# Environment variable -> dotted config path
ENV_OVERRIDES = {
    "PHOTO_INGEST_STORAGE_BACKEND": "storage.backend",
    "PHOTO_INGEST_S3_BUCKET": "storage.s3_bucket",
    "PHOTO_INGEST_S3_REGION": "storage.s3_region",
    "PHOTO_INGEST_S3_ENDPOINT_URL": "storage.s3_endpoint_url",
    "PHOTO_INGEST_LOCAL_ROOT": "storage.local_root",
    "PHOTO_INGEST_PUBLIC_BASE_URL": "storage.public_base_url",
    "PHOTO_INGEST_DATABASE_URL": "database.url",
    "PHOTO_INGEST_LOG_LEVEL": "logging.level",
}


def get_config_value(config: Union[IngestConfig, Dict], path: str, default=None):
    """
    Safely get a config value from either Pydantic model or dict.

    Args:
        config: IngestConfig model or dict
        path: Dot-separated path like "limits.max_megapixels"
        default: Default value if not found

    Returns:
        The config value or default
    """
    if isinstance(config, IngestConfig):
        config = config.model_dump()

    keys = path.split(".")
    value = config
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: Dict, override: Dict) -> Dict:
    """Recursive merge of two dictionaries."""
    result = base.copy()
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Build a nested override dict from PHOTO_INGEST_* environment variables."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for var, path in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        section, key = path.split(".")
        overrides.setdefault(section, {})[key] = value
    return overrides


def resolve_config(
    cli_args: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> IngestConfig:
    """
    Resolve config: Default < Local < Environment < CLI
    Returns validated Pydantic IngestConfig model.

    Raises:
        pydantic.ValidationError: if the merged configuration is invalid
    """
    cli_args = cli_args or {}
    environ = os.environ if environ is None else environ

    # 1. Load default YAML (or an explicit file)
    explicit = cli_args.get("config") or environ.get("PHOTO_INGEST_CONFIG")
    config_data = load_yaml(Path(explicit) if explicit else DEFAULT_CONFIG_PATH)

    # 2. Merge local overrides
    config_data = merge_dicts(config_data, load_yaml(LOCAL_CONFIG_PATH))

    # 3. Environment
    config_data = merge_dicts(config_data, env_overrides(environ))

    # 4. Validate, then apply CLI overrides
    config = IngestConfig.from_dict(config_data)
    return config.merge_cli_overrides(cli_args)
