"""Load domain, persona and behavior configuration from a directory of JSON files."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from mycel.core.config import get_settings
from mycel.core.errors import ConfigurationError
from mycel.core.logging import get_logger
from mycel.core.schemas_domain import (
    BEHAVIOR_PRESETS,
    DomainBehaviorConfig,
    DomainConfig,
    PersonaConfig,
    resolve_behavior_preset,
)

logger = get_logger(__name__)

DOMAIN_FILE = "domain.json"
PERSONA_FILE = "persona.json"
BEHAVIOR_FILE = "behavior.json"


@dataclass(frozen=True)
class AppConfig:
    domain: DomainConfig
    persona: PersonaConfig
    behavior: DomainBehaviorConfig


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}", cause=e) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e.msg}", cause=e) from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read configuration file {path}: {e}", cause=e) from e


def _validate(model: type[BaseModel], raw: Any, path: Path):
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '(root)'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration in {path}: {details}", cause=e) from e


def load_behavior(raw: Any, path: Path) -> DomainBehaviorConfig:
    """
    Behavior is either a preset name, {"preset": name, ...overrides}, or a full object.
    """
    if isinstance(raw, str):
        if raw not in BEHAVIOR_PRESETS:
            raise ConfigurationError(f"Unknown behavior preset '{raw}' in {path}")
        return resolve_behavior_preset(raw)

    if isinstance(raw, dict) and "preset" in raw:
        preset = raw["preset"]
        if preset not in BEHAVIOR_PRESETS:
            raise ConfigurationError(f"Unknown behavior preset '{preset}' in {path}")
        overrides = {k: v for k, v in raw.items() if k != "preset"}
        merged = resolve_behavior_preset(preset).model_dump() | overrides
        return _validate(DomainBehaviorConfig, merged, path)

    return _validate(DomainBehaviorConfig, raw, path)


def load_config(config_dir: str | Path | None = None) -> AppConfig:
    """
    Load domain.json, persona.json and the optional behavior.json from `config_dir`
    (MYCEL_CONFIG_DIR when omitted).

    Raises:
        ConfigurationError: If a required file is missing, unreadable or invalid
    """
    base = Path(config_dir if config_dir is not None else get_settings().MYCEL_CONFIG_DIR)
    domain_path = base / DOMAIN_FILE
    persona_path = base / PERSONA_FILE
    behavior_path = base / BEHAVIOR_FILE

    domain = _validate(DomainConfig, _read_json(domain_path), domain_path)
    persona = _validate(PersonaConfig, _read_json(persona_path), persona_path)

    if behavior_path.exists():
        behavior = load_behavior(_read_json(behavior_path), behavior_path)
    else:
        behavior = DomainBehaviorConfig()

    logger.info(
        f"Loaded configuration for domain '{domain.name}'",
        extra={
            "domain": domain.name,
            "persona": persona.name,
            "categories": len(domain.categories),
        },
    )
    return AppConfig(domain=domain, persona=persona, behavior=behavior)
