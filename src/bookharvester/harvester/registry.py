"""Converter plugin registry with auto-discovery.

Converters turn a downloaded book into distributable artifacts (bloomd,
epub, ...) plus classification results. The rendering engine is not part
of this package, so converters are plugins.

Usage:
    # In the plugin package:
    from bookharvester.harvester.registry import converter_registry

    @converter_registry.register("bloom")
    class BloomConverter:
        async def convert(self, item, book_dir, staging_dir): ...

    # In the worker:
    converter_registry.discover_plugins("/path/to/plugins")
    converter = converter_registry.get_converter("bloom")
    converter = converter_registry.get_converter("mypkg.convert:BloomConverter")
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Type

logger = logging.getLogger(__name__)


class ConverterRegistry:
    """Registry for book converters.

    Supports:
    - Explicit registration via decorator
    - Auto-discovery from ``<plugin_dir>/converters/*.py``
    - ``module:Class`` import paths
    """

    def __init__(self):
        self._converters: Dict[str, Type[Any]] = {}
        self._discovered_paths: set[str] = set()

    def register(self, name: str) -> Callable[[Type], Type]:
        """Decorator to register a converter class under ``name``."""

        def decorator(cls: Type) -> Type:
            self._converters[name.lower()] = cls
            logger.debug(f"Registered converter: {name} -> {cls.__name__}")
            return cls

        return decorator

    def discover_plugins(self, plugin_dir: str | Path) -> int:
        """Load converters from ``plugin_dir/converters``.

        Each ``converters/<name>.py`` should define ``<Name>Converter``
        (e.g. ``bloom_desktop.py`` -> ``BloomDesktopConverter``); failing
        that, the first public class ending in ``Converter`` is used.

        Returns:
            Number of converters discovered.
        """
        plugin_path = Path(plugin_dir)
        path_str = str(plugin_path.resolve())

        if path_str in self._discovered_paths:
            logger.debug(f"Already discovered: {plugin_path}")
            return 0

        converters_dir = plugin_path / "converters"
        if not converters_dir.exists():
            logger.warning(f"Converter directory not found: {converters_dir}")
            return 0

        discovered = 0
        for py_file in converters_dir.glob("*.py"):
            if py_file.name.startswith("_"):
                continue

            name = py_file.stem
            expected_class = self._name_to_classname(name)
            try:
                spec = importlib.util.spec_from_file_location(
                    f"bookharvester_plugin_{name}", py_file
                )
                if not (spec and spec.loader):
                    continue
                module = importlib.util.module_from_spec(spec)
                sys.modules[spec.name] = module
                spec.loader.exec_module(module)

                cls = getattr(module, expected_class, None)
                if cls is None:
                    cls = next(
                        (
                            getattr(module, attr)
                            for attr in dir(module)
                            if attr.endswith("Converter")
                            and not attr.startswith("_")
                            and isinstance(getattr(module, attr), type)
                        ),
                        None,
                    )
                if cls is not None:
                    self._converters[name.lower()] = cls
                    discovered += 1
                    logger.debug(f"Discovered {cls.__name__} in {py_file}")
            except Exception as e:
                logger.warning(f"Failed to load converter from {py_file}: {e}")

        self._discovered_paths.add(path_str)
        logger.info(f"Discovered {discovered} converters from {plugin_path}")
        return discovered

    @staticmethod
    def _name_to_classname(name: str) -> str:
        """e.g. "bloom_desktop" -> "BloomDesktopConverter"."""
        return "".join(part.capitalize() for part in name.split("_")) + "Converter"

    def get_converter(self, name: str) -> Optional[Any]:
        """Instantiate a converter by registered name or ``module:Class`` path."""
        if not name:
            return None

        cls = self._converters.get(name.lower())
        if cls is not None:
            return cls()

        if ":" in name:
            module_name, class_name = name.split(":", 1)
            try:
                module = importlib.import_module(module_name)
                return getattr(module, class_name)()
            except (ImportError, AttributeError) as e:
                logger.warning(f"Could not import converter {name}: {e}")
        return None

    def list_converters(self) -> list[str]:
        return list(self._converters.keys())


# Global registry
converter_registry = ConverterRegistry()


__all__ = ["ConverterRegistry", "converter_registry"]
