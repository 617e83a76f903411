"""
assertive_config -- single public entrypoint for the domain catalog.

Responsibility:
    Provides the ONLY way to obtain the catalog at runtime through
    ``get_catalog()``.  YAML loading lives in ``loader`` and is used
    directly only by tests and tooling that need an alternate directory.

Architecture position:
    Configuration -- sits above ``assertive_kernel``.  The kernel never
    imports from ``assertive_config``; services receive a ``Catalog``
    through their constructors.

Invariants enforced:
    - The catalog is validated before it is returned.
    - The default catalog is loaded once per process and shared.

Failure modes:
    - ``CatalogValidationError`` -- the YAML fragments are inconsistent.
    - ``FileNotFoundError`` / ``yaml.YAMLError`` from the loader.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from assertive_config.loader import load_catalog
from assertive_kernel.domain.catalog import Catalog

DEFAULT_CATALOG_DIR = Path(__file__).parent / "catalog"


@lru_cache(maxsize=None)
def _load_default() -> Catalog:
    return load_catalog(DEFAULT_CATALOG_DIR)


def get_catalog(catalog_dir: Path | None = None) -> Catalog:
    """Return the validated catalog (cached for the default directory)."""
    if catalog_dir is None:
        return _load_default()
    return load_catalog(catalog_dir)


__all__ = ["DEFAULT_CATALOG_DIR", "get_catalog", "load_catalog"]
