"""
credence/core/config.py

Engine configuration.

Sources, later ones overriding earlier ones:
    1. EngineConfig defaults
    2. YAML file              (EngineConfig.from_yaml)
    3. CREDENCE_* environment (EngineConfig.from_env)

Keys are accepted in either the published camelCase form
(requiredSources, confidenceThreshold, algorithm, evaluationTimeout,
maxEvaluationTime) or snake_case.
"""

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from credence.core.exceptions import ConfigError
from credence.core.models import Algorithm


_ALIASES = {
    "requiredSources":        "required_sources",
    "confidenceThreshold":    "confidence_threshold",
    "evaluationTimeout":      "evaluation_timeout",
    "maxEvaluationTime":      "max_evaluation_time",
    "defaultDeadlineMinutes": "default_deadline_minutes",
    "minStake":               "min_stake",
}

_ENV_PREFIX = "CREDENCE_"


@dataclass(frozen=True)
class EngineConfig:
    required_sources:         int   = 3
    confidence_threshold:     float = 0.8
    algorithm:                str   = Algorithm.MEDIAN.value
    evaluation_timeout:       float = 30.0
    max_evaluation_time:      float = 300.0
    default_deadline_minutes: int   = 60
    min_stake:                int   = 0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.required_sources, int) or self.required_sources < 1:
            raise ConfigError(
                "required_sources must be an int >= 1",
                {"required_sources": self.required_sources},
            )
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigError(
                "confidence_threshold must be within [0, 1]",
                {"confidence_threshold": self.confidence_threshold},
            )
        try:
            Algorithm(self.algorithm)
        except ValueError:
            raise ConfigError(
                f"unknown algorithm {self.algorithm!r}",
                {"valid": ", ".join(a.value for a in Algorithm)},
            )
        if self.evaluation_timeout <= 0 or self.max_evaluation_time <= 0:
            raise ConfigError(
                "timeouts must be positive",
                {
                    "evaluation_timeout":  self.evaluation_timeout,
                    "max_evaluation_time": self.max_evaluation_time,
                },
            )
        if self.default_deadline_minutes < 1:
            raise ConfigError(
                "default_deadline_minutes must be >= 1",
                {"default_deadline_minutes": self.default_deadline_minutes},
            )
        if self.min_stake < 0:
            raise ConfigError("min_stake must be >= 0", {"min_stake": self.min_stake})

    # ── Loaders ───────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Optional["EngineConfig"] = None) -> "EngineConfig":
        """Build from a mapping. Unknown keys are a ConfigError, not ignored."""
        base = base or cls()
        known = {f.name: f.type for f in fields(cls)}
        updates: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigError(f"unknown configuration key {key!r}")
            updates[name] = _coerce(name, value)
        return replace(base, **updates)

    @classmethod
    def from_yaml(cls, path, base: Optional["EngineConfig"] = None) -> "EngineConfig":
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"config file {path} must contain a mapping")
        # Allow the options to live under a top-level "engine" key.
        data = data.get("engine", data)
        return cls.from_dict(data, base=base)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["EngineConfig"] = None,
    ) -> "EngineConfig":
        """Read CREDENCE_REQUIRED_SOURCES, CREDENCE_ALGORITHM, ..."""
        environ = os.environ if environ is None else environ
        data = {}
        for f in fields(cls):
            raw = environ.get(_ENV_PREFIX + f.name.upper())
            if raw is not None and raw != "":
                data[f.name] = raw
        return cls.from_dict(data, base=base)

    @classmethod
    def load(cls, path=None, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        config = cls()
        if path is None:
            path = (environ if environ is not None else os.environ).get("CREDENCE_CONFIG")
        if path:
            config = cls.from_yaml(path, base=config)
        return cls.from_env(environ, base=config)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(name: str, value: Any) -> Any:
    try:
        if name in ("required_sources", "default_deadline_minutes", "min_stake"):
            if isinstance(value, bool):
                raise ValueError("bool is not an int")
            return int(value)
        if name in ("confidence_threshold", "evaluation_timeout", "max_evaluation_time"):
            return float(value)
        if name == "algorithm":
            return str(value).strip().lower()
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {name}: {value!r}") from exc
    return value
