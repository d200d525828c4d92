"""YAML loader for the schema catalog.

catalogs can be split over several files (one per domain area is handy) and
get merged into a single SchemaCatalog. references are validated after
everything is loaded so file order doesn't matter.
"""

import logging
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from reportforge.models.catalog import Relationship, SchemaCatalog, SchemaObject

logger = logging.getLogger(__name__)


class CatalogLoader:
    """Collects schema objects and relationships from YAML files."""

    def __init__(self) -> None:
        self.objects: dict[str, SchemaObject] = {}
        self.relationships: list[Relationship] = []

    def load_directory(self, path: Path) -> SchemaCatalog:
        """Load every yaml/yml file below a directory."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Catalog directory not found: {path}")

        yaml_files = sorted(list(path.glob("**/*.yaml")) + list(path.glob("**/*.yml")))
        if not yaml_files:
            raise ValueError(f"No YAML files found in {path}")

        for yaml_file in yaml_files:
            self._load_file(yaml_file)
        return self.build()

    def load_file(self, path: Path) -> SchemaCatalog:
        """Load a single catalog file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")
        self._load_file(path)
        return self.build()

    def load_text(self, text: str) -> SchemaCatalog:
        """Load catalog yaml from a string - mostly for tests and embedding."""
        self._load_data(yaml.safe_load(text), source="<string>")
        return self.build()

    def _load_file(self, path: Path) -> None:
        with open(path) as f:
            data = yaml.safe_load(f)
        self._load_data(data, source=str(path))

    def _load_data(self, data: dict[str, Any] | None, source: str) -> None:
        if data is None:
            return  # empty file

        for obj_data in data.get("objects", []):
            obj = SchemaObject.model_validate(obj_data)
            if obj.name in self.objects:
                raise ValueError(f"Duplicate schema object: {obj.name}")
            self.objects[obj.name] = obj

        for rel_data in data.get("relationships", []):
            self.relationships.append(Relationship.model_validate(rel_data))

        logger.debug(
            "loaded catalog source %s (%d objects, %d relationships so far)",
            source,
            len(self.objects),
            len(self.relationships),
        )

    def build(self) -> SchemaCatalog:
        """Validate references and return the merged catalog."""
        self._validate_references()
        return SchemaCatalog(
            objects=list(self.objects.values()),
            relationships=list(self.relationships),
        )

    def _validate_references(self) -> None:
        """Relationships must point at declared objects.

        a typo here would otherwise just show up as a join that silently
        never resolves, which is miserable to track down.
        """
        table_names = {obj.table_name: name for name, obj in self.objects.items()}
        for rel in self.relationships:
            for end in (rel.from_object, rel.to_object):
                if end not in self.objects and end not in table_names:
                    raise ValueError(
                        f"Relationship {rel.from_object} -> {rel.to_object} "
                        f"references unknown object '{end}'"
                    )


def load_catalog(path: str | Path) -> SchemaCatalog:
    """Load a catalog from a file or a directory of files."""
    path = Path(path)
    loader = CatalogLoader()
    if path.is_dir():
        return loader.load_directory(path)
    return loader.load_file(path)


def default_catalog() -> SchemaCatalog:
    """The Stripe-like catalog that ships with the package."""
    text = resources.files("reportforge.catalog").joinpath("stripe.yaml").read_text()
    return CatalogLoader().load_text(text)
