"""
Configuration for the Inactivity Engine.

Loads the packaged stage definitions and merges an optional user
configuration file (YAML or JSON) and environment credentials on top.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .models import StageConfig

logger = logging.getLogger(__name__)

DEFAULT_STAGES_FILE = Path(__file__).parent / "engine" / "stages.yaml"

ENV_TENANT_ID = "AZURE_TENANT_ID"
ENV_CLIENT_ID = "AZURE_CLIENT_ID"
ENV_CLIENT_SECRET = "AZURE_CLIENT_SECRET"


class ConnectorSettings(BaseModel):
    """Directory connection settings."""
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = Field(None, repr=False)
    endpoint: str = "https://graph.microsoft.com/v1.0"
    timeout: int = 30
    max_retries: int = 3
    page_size: int = 999


class EngineSettings(BaseModel):
    """Complete engine configuration passed explicitly to every run."""
    stages: Dict[str, StageConfig] = Field(default_factory=dict)
    connector: ConnectorSettings = Field(default_factory=ConnectorSettings)
    license_catalog_failure: str = Field("degrade", description="degrade | fail")
    sku_names_file: Optional[str] = None
    audit_dir: Optional[str] = None
    report_dir: Optional[str] = None

    @field_validator("license_catalog_failure")
    @classmethod
    def validate_catalog_policy(cls, v: str) -> str:
        if v not in ("degrade", "fail"):
            raise ValueError("license_catalog_failure must be 'degrade' or 'fail'")
        return v

    def get_stage(self, name: str) -> StageConfig:
        """
        Look up a stage by name.

        Raises:
            KeyError: If the stage is not configured
        """
        if name not in self.stages:
            raise KeyError(f"Unknown stage '{name}'. Configured stages: {', '.join(sorted(self.stages))}")
        return self.stages[name]

    def stage_names(self) -> List[str]:
        return sorted(self.stages)


def _read_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    return data or {}


def _merge_stage_maps(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = {name: dict(cfg or {}) for name, cfg in base.items()}
    for name, cfg in (override or {}).items():
        merged.setdefault(name, {}).update(cfg or {})
    return merged


def load_settings(config_path: Optional[Union[str, Path]] = None,
                  defaults_path: Optional[Union[str, Path]] = None) -> EngineSettings:
    """
    Load engine settings.

    Args:
        config_path: Optional user config file (YAML or JSON)
        defaults_path: Packaged defaults; overridable for tests

    Returns:
        Validated EngineSettings
    """
    defaults_file = Path(defaults_path) if defaults_path else DEFAULT_STAGES_FILE
    raw = _read_file(defaults_file)
    logger.debug(f"Loaded default stages from {defaults_file}")

    if config_path:
        user_file = Path(config_path)
        if not user_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {user_file}")
        user = _read_file(user_file)
        logger.info(f"Loaded configuration from {user_file}")

        raw["defaults"] = {**(raw.get("defaults") or {}), **(user.get("defaults") or {})}
        raw["stages"] = _merge_stage_maps(raw.get("stages") or {}, user.get("stages") or {})
        for key, value in user.items():
            if key not in ("defaults", "stages"):
                raw[key] = value

    stage_defaults = raw.get("defaults") or {}
    stages = {
        name: StageConfig(**{**stage_defaults, **(cfg or {}), "name": name})
        for name, cfg in (raw.get("stages") or {}).items()
    }

    connector = dict(raw.get("connector") or {})
    connector.setdefault("tenant_id", os.environ.get(ENV_TENANT_ID))
    connector.setdefault("client_id", os.environ.get(ENV_CLIENT_ID))
    # Secrets are only read from the environment unless explicitly present in the file
    connector.setdefault("client_secret", os.environ.get(ENV_CLIENT_SECRET))

    return EngineSettings(
        stages=stages,
        connector=ConnectorSettings(**connector),
        license_catalog_failure=raw.get("license_catalog_failure", "degrade"),
        sku_names_file=raw.get("sku_names_file"),
        audit_dir=raw.get("audit_dir"),
        report_dir=raw.get("report_dir"),
    )
