"""Model catalog.

Loaded from a YAML file (the packaged ``models.yaml`` by default), then
adjusted from the environment:

- ``MODEL_OVERRIDES``: JSON array of model objects merged by ``id``; unknown
  ids are appended.
- ``MODEL_<ID>_ENABLED``: ``true``/``false`` toggle for one model, where
  ``<ID>`` is the model id upper-cased with every non-alphanumeric character
  replaced by ``_``.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from excel_agent.config import Settings, get_settings
from excel_agent.exceptions import ConfigurationError
from excel_agent.logging import get_logger
from excel_agent.protocol.workbook import WireModel
from excel_agent.providers.registry import ProviderTag

log = get_logger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).with_name("models.yaml")


class ModelInfo(WireModel):
    id: str
    label: str
    provider: ProviderTag
    family: str
    supports_tool_calling: bool = True
    default_temperature: float | None = None
    enabled: bool = True


class ModelsResponse(WireModel):
    models: list[ModelInfo]
    default_model_id: str | None = None


def _snake_keys(entry: dict[str, Any]) -> dict[str, Any]:
    return {re.sub(r"(?<!^)(?=[A-Z])", "_", k).lower(): v for k, v in entry.items()}


def enabled_env_key(model_id: str) -> str:
    return f"MODEL_{re.sub(r'[^A-Z0-9]', '_', model_id.upper())}_ENABLED"


class ModelCatalog:
    """The set of models the agent may use.

    Args:
        path:     YAML catalog file. Defaults to the configured or packaged one.
        environ:  Environment mapping for overrides. Defaults to ``os.environ``.
        settings: Settings supplying the catalog path and overrides variable.
    """

    def __init__(
        self,
        path: Path | None = None,
        environ: Mapping[str, str] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._path = path or self._settings.models.catalog_path or DEFAULT_CATALOG_PATH
        self._environ = environ if environ is not None else os.environ
        self._models: list[ModelInfo] = []
        self._default_model_id: str | None = None
        self.reload()

    def reload(self) -> None:
        raw = self._read_catalog()
        self._default_model_id = raw.get("default_model_id") or raw.get("defaultModelId")

        entries: list[dict[str, Any]] = [_snake_keys(m) for m in raw.get("models") or []]
        self._apply_overrides(entries)

        models: list[ModelInfo] = []
        for entry in entries:
            try:
                models.append(ModelInfo.model_validate(entry))
            except ValidationError as exc:
                log.warning("model_entry_invalid", model_id=entry.get("id"), error=str(exc))

        for model in models:
            value = self._environ.get(enabled_env_key(model.id))
            if value is not None:
                model.enabled = value.lower() == "true"

        self._models = models
        log.debug("model_catalog_loaded", path=str(self._path), models=len(models))

    def _read_catalog(self) -> dict[str, Any]:
        try:
            with Path(self._path).open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                f"Cannot read model catalog {self._path}: {exc}", context={"path": str(self._path)}
            ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Model catalog {self._path} must be a mapping")
        return data

    def _apply_overrides(self, entries: list[dict[str, Any]]) -> None:
        var = self._settings.models.overrides_env
        raw = self._environ.get(var)
        if not raw:
            return
        try:
            overrides = json.loads(raw)
        except json.JSONDecodeError as exc:
            log.error("model_overrides_invalid", env=var, error=str(exc))
            return
        if not isinstance(overrides, list):
            log.error("model_overrides_invalid", env=var, error="expected a JSON array")
            return

        by_id = {e.get("id"): e for e in entries}
        for override in overrides:
            if not isinstance(override, dict) or "id" not in override:
                continue
            override = _snake_keys(override)
            existing = by_id.get(override["id"])
            if existing is not None:
                existing.update(override)
            else:
                entries.append(override)
                by_id[override["id"]] = entries[-1]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_enabled_models(self) -> ModelsResponse:
        enabled = [m for m in self._models if m.enabled]
        default_id = self._default_model_id
        if default_id and not any(m.id == default_id for m in enabled):
            default_id = enabled[0].id if enabled else None
        return ModelsResponse(models=enabled, default_model_id=default_id)

    def get_model_by_id(self, model_id: str) -> ModelInfo | None:
        for model in self._models:
            if model.id == model_id and model.enabled:
                return model
        return None

    def get_all_models(self) -> list[ModelInfo]:
        return list(self._models)
