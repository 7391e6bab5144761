"""
Probe Targets for Model Vitals

Describes the endpoints to probe and the model probes under each one, and
loads them from a YAML file shaped like::

    endpoints:
      - name: onwards-service
        url: http://onwards-service
        models:
          - name: embed
            type: embedding
            monitor: my-embedding-model   # optional
          - name: generate
            type: chat
            model_name: llama-3-8b        # optional, defaults to name
            schedule: "*/1 * * * *"       # optional, defaults to PROBE_DEFAULT_SCHEDULE
          - name: smoke
            type: collection
            collection: collections/smoke.json

``type`` is accepted as an alias of ``kind``. Every validation failure is
raised as a ConfigurationError before any probe runs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator
)

from config.constants import ProbeKind
from config.settings import validate_schedule_expression
from exceptions import ConfigurationError


class ModelProbeConfig(BaseModel):
    """One model probe under an endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(..., min_length=1)
    kind: ProbeKind = Field(..., alias="type")
    monitor: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Exporter monitor identifier override"
    )
    model_name: Optional[str] = Field(
        default=None,
        description="Model id sent in the request body (defaults to name)"
    )
    schedule: Optional[str] = Field(
        default=None,
        description="Cron expression or @once overriding the default schedule"
    )
    timeout_seconds: Optional[float] = Field(default=None, gt=0, le=3600)

    # Collection probes only
    collection: Optional[str] = Field(
        default=None,
        description="Collection file path or URL handed to the collection runner"
    )
    environment: Optional[str] = Field(
        default=None,
        description="Optional collection environment file"
    )

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_schedule_expression(v)

    @model_validator(mode="after")
    def validate_collection(self) -> "ModelProbeConfig":
        if self.kind == ProbeKind.COLLECTION and not self.collection:
            raise ValueError(f"collection probe '{self.name}' needs a 'collection'")
        return self

    @property
    def request_model(self) -> str:
        return self.model_name or self.name


class EndpointConfig(BaseModel):
    """An OpenAI-compatible server and the model probes run against it."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    models: List[ModelProbeConfig] = Field(default_factory=list)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"endpoint url must be http(s): {v!r}")
        return v

    def monitor_name(self, model: ModelProbeConfig) -> str:
        """Monitor identifier for *model*, defaulting to ``{endpoint}-{model}``."""
        return model.monitor or f"{self.name}-{model.name}"


class TargetsConfig(BaseModel):
    """
    The full probe set of one process.

    Monitor identifiers must be unique across every endpoint.
    """

    model_config = ConfigDict(extra="ignore")

    endpoints: List[EndpointConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_monitors(self) -> "TargetsConfig":
        seen: Dict[str, str] = {}
        for endpoint in self.endpoints:
            for model in endpoint.models:
                monitor = endpoint.monitor_name(model)
                owner = f"{endpoint.name}/{model.name}"
                if monitor in seen:
                    raise ValueError(
                        f"duplicate monitor name '{monitor}' "
                        f"({seen[monitor]} and {owner})"
                    )
                seen[monitor] = owner
        return self

    @property
    def probe_count(self) -> int:
        return sum(len(endpoint.models) for endpoint in self.endpoints)

    @classmethod
    def from_dict(cls, data: Any) -> "TargetsConfig":
        """
        Validate raw targets data.

        Raises:
            ConfigurationError: If the data is not a valid probe set
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "targets must be a mapping with an 'endpoints' list",
                config_key="endpoints",
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"invalid targets: {_summarize(e)}",
                config_key="endpoints",
                cause=e,
            ) from e


def load_targets(path: Union[str, Path]) -> TargetsConfig:
    """
    Load and validate the targets YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        TargetsConfig: The validated probe set

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"cannot read targets file {path}: {e}",
            config_key="PROBE_TARGETS_FILE",
            cause=e,
        ) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"targets file {path} is not valid YAML: {e}",
            config_key="PROBE_TARGETS_FILE",
            cause=e,
        ) from e

    return TargetsConfig.from_dict(data)


def _summarize(error: ValidationError) -> str:
    """One line per validation error: ``loc: message``."""
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc}: {item.get('msg')}" if loc else str(item.get("msg")))
    return "; ".join(parts)
