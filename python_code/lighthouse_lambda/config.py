"""
Configuration loading and validation.

The static configuration is a JSON document validated against
``schemas/config.schema.json`` when the container starts. Deployment-specific
values (the external catalog, its auth header, the third-party block list)
come from environment variables.
"""

import json
import os
from collections import Counter
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from jsonschema import Draft7Validator, FormatChecker

from .core import parse_block_list
from .exceptions import ConfigValidationError
from .model import Subject
from .warehouse import WarehouseTarget

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config.json"
MAX_REPORTED_ERRORS = 10


def get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Gets an environment variable or raises a ValueError for fast-failure.

    Args:
        name: The name of the environment variable.
        default: An optional default value. If not provided, the variable is required.

    Returns:
        The value of the environment variable.

    Raises:
        ValueError: If the required environment variable is not set.
    """
    value = os.environ.get(name, default)
    if value is None:
        raise ValueError(f"FATAL: Environment variable '{name}' is not set.")
    return value


@lru_cache(maxsize=None)
def load_schema(name: str) -> Dict[str, Any]:
    text = resources.files(__package__).joinpath("schemas", f"{name}.schema.json").read_text(encoding="utf-8")
    return json.loads(text)


@dataclass(frozen=True)
class PipelineConfig:
    """The validated static configuration."""

    source: List[Subject]
    lighthouse_flags: Dict[str, Any]
    min_time_between_triggers: int
    bucket_name: str
    warehouse: WarehouseTarget
    trigger_queue_url: str
    state_key_policy: str = "message"
    fan_out_workers: int = 8
    warehouse_poll_interval: float = 0.5

    @property
    def output_formats(self) -> List[str]:
        return list(self.lighthouse_flags.get("output") or [])


@dataclass(frozen=True)
class RuntimeEnvironment:
    """Values read from the environment at cold start."""

    source_url: Optional[str] = None
    source_auth: Optional[str] = None
    third_party_block_list: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "RuntimeEnvironment":
        return cls(
            source_url=get_env_var("SOURCE_URL", "") or None,
            source_auth=get_env_var("SOURCE_AUTH", "") or None,
            third_party_block_list=parse_block_list(get_env_var("THIRDPARTY_TO_BLOCK", "")),
        )


def validate_config(config: Any, location: str = "<config>") -> None:
    """
    Validates a raw configuration object.

    Raises:
        ConfigValidationError: Listing up to ten schema errors, or naming the
                               duplicated subject ids.
    """
    validator = Draft7Validator(load_schema("config"), format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(config), key=lambda exc: list(exc.path))
    if errors:
        lines = [f"Error(s) in configuration file {location}:"]
        details = []
        for error in errors[:MAX_REPORTED_ERRORS]:
            path = ".".join(str(p) for p in error.path) if error.path else "<root>"
            lines.append(f"- {path}: {error.message}")
            details.append({"path": path, "message": error.message})
        if len(errors) > MAX_REPORTED_ERRORS:
            lines.append(f"... and {len(errors) - MAX_REPORTED_ERRORS} more errors.")
        raise ConfigValidationError("\n".join(lines), context={"path": location, "errors": details})

    counts = Counter(subject["id"] for subject in config["source"])
    duplicates = sorted(subject_id for subject_id, count in counts.items() if count > 1)
    if duplicates:
        raise ConfigValidationError(
            f"Duplicate subject id(s) in {location}: {', '.join(duplicates)}",
            context={"path": location, "duplicates": duplicates},
        )


def build_config(raw: Mapping[str, Any]) -> PipelineConfig:
    warehouse = raw["warehouse"]
    return PipelineConfig(
        source=[{"id": s["id"], "url": s["url"]} for s in raw["source"]],
        lighthouse_flags=dict(raw["lighthouse_flags"]),
        min_time_between_triggers=raw["min_time_between_triggers"],
        bucket_name=raw["storage"]["bucket_name"],
        warehouse=WarehouseTarget(
            database=warehouse["database"],
            schema=warehouse["schema"],
            table=warehouse.get("table", "reports"),
            workgroup_name=warehouse.get("workgroup_name"),
            cluster_identifier=warehouse.get("cluster_identifier"),
            secret_arn=warehouse.get("secret_arn"),
            db_user=warehouse.get("db_user"),
        ),
        trigger_queue_url=raw["trigger_queue_url"],
        state_key_policy=raw.get("state_key_policy", "message"),
        fan_out_workers=raw.get("fan_out_workers", 8),
        warehouse_poll_interval=warehouse.get("poll_interval_seconds", 0.5),
    )


def load_config(path: Optional[Path] = None) -> PipelineConfig:
    """
    Reads, validates and builds the pipeline configuration.

    Args:
        path: The config file; defaults to ``$CONFIG_PATH`` or the bundled
              ``config.json``.

    Raises:
        ConfigValidationError: If the file is not valid JSON or fails validation.
    """
    path = path or Path(get_env_var("CONFIG_PATH", str(DEFAULT_CONFIG_PATH)))
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigValidationError(f"Could not read configuration file {path}: {e}") from e
    validate_config(raw, str(path))
    return build_config(raw)
