"""Region name to display label lookup, loaded explicitly and passed around."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from importlib import resources
from pathlib import Path

logger = logging.getLogger(__name__)


class RegionCatalog:
    """Bidirectional mapping between provider region names and display labels.

    Regions without a label display as their raw name, so the reverse lookup
    also accepts raw names.
    """

    def __init__(self, labels: Mapping[str, str] | None = None) -> None:
        self._labels = dict(labels or {})
        self._reverse = {label: region for region, label in self._labels.items()}

    def __len__(self) -> int:
        return len(self._labels)

    def label(self, region: str) -> str:
        return self._labels.get(region, region)

    def labels(self, regions: Iterable[str]) -> list[str]:
        return [self.label(region) for region in regions]

    def region_for(self, label: str) -> str:
        return self._reverse.get(label, label)

    @classmethod
    def from_file(cls, path: str | Path) -> "RegionCatalog":
        with Path(path).open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return cls(_validate_mapping(data, str(path)))

    @classmethod
    def bundled(cls, provider: str) -> "RegionCatalog":
        resource = resources.files("auto_proxy") / "data" / f"{provider}_region_map.json"
        if not resource.is_file():
            logger.warning("No bundled region map for provider %s", provider)
            return cls()
        data = json.loads(resource.read_text(encoding="utf-8"))
        return cls(_validate_mapping(data, resource.name))


def load_region_catalog(provider: str, path: str | None = None) -> RegionCatalog:
    """Load the catalog from ``path`` when given, otherwise the bundled one."""
    if path:
        return RegionCatalog.from_file(path)
    return RegionCatalog.bundled(provider)


def _validate_mapping(data: object, source: str) -> dict[str, str]:
    if not isinstance(data, dict):
        raise ValueError(f"Region map {source} must be a JSON object")
    return {str(key): str(value) for key, value in data.items()}
