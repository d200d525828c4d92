"""Schema catalog loading."""

from reportforge.catalog.loader import CatalogLoader, default_catalog, load_catalog

__all__ = ["CatalogLoader", "default_catalog", "load_catalog"]
