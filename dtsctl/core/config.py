"""Loading, validation and persistence of the YAML user config."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from dtsctl.core.errors import ConfigLoadError, ConfigValidationError
from dtsctl.core.model import FilterSettings, ScannerConfig

LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedConfig:
    config: ScannerConfig
    path: Path
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("dtsctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "dtsctl" / CONFIG_FILENAME


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _build_config(doc: dict[str, Any], source: Path) -> ScannerConfig:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = ScannerConfig()
    return ScannerConfig(
        filters=FilterSettings(
            by_service=doc.get("filter_by_service", defaults.filters.by_service),
            by_rssi=doc.get("filter_by_rssi", defaults.filters.by_rssi),
        ),
        connection_timeout_s=float(doc.get("connection_timeout_s", defaults.connection_timeout_s)),
        transaction_timeout_s=float(doc.get("transaction_timeout_s", defaults.transaction_timeout_s)),
        max_retries=int(doc.get("max_retries", defaults.max_retries)),
        write_with_response=doc.get("write_with_response", defaults.write_with_response),
        scan_duration_s=float(doc.get("scan_duration_s", defaults.scan_duration_s)),
    )


def load_config(path: Path | None = None) -> LoadedConfig:
    path = path or config_path()
    if not path.exists():
        LOGGER.debug("No config file at %s; using defaults", path)
        return LoadedConfig(config=ScannerConfig(), path=path, warnings=())

    doc = _read_yaml(path)
    warnings: list[str] = []
    if doc.get("write_with_response") is True:
        warning = "write_with_response is enabled; some firmware only accepts unacknowledged writes"
        LOGGER.warning(warning)
        warnings.append(warning)
    return LoadedConfig(config=_build_config(doc, path), path=path, warnings=tuple(warnings))


def save_filter_settings(settings: FilterSettings, path: Path | None = None) -> Path:
    path = path or config_path()
    doc = _read_yaml(path) if path.exists() else {}
    doc["filter_by_service"] = settings.by_service
    doc["filter_by_rssi"] = settings.by_rssi
    _build_config(doc, path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(doc, sort_keys=True), encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not write config file {path}: {exc}") from exc
    LOGGER.debug("Saved filter settings to %s", path)
    return path
