"""Blueprint registration helpers."""

from __future__ import annotations

import importlib
import importlib.util
import pkgutil
from pathlib import Path

from flask import Blueprint, Flask

from common.logging import get_logger

logger = get_logger("app.blueprints")


def _iter_blueprints(package: str = "plugins") -> list[Blueprint]:
    """Collect blueprints exported by ``<package>.<plugin>.api``.

    A plugin exports either a ``blueprints`` list or a single ``bp``; plugins
    without an ``api`` module are skipped.
    """

    module_path = Path(__file__).resolve().parent.parent / package
    if not module_path.exists():
        return []
    blueprints: list[Blueprint] = []
    for module_info in pkgutil.iter_modules([str(module_path)]):
        if not module_info.ispkg:
            continue
        dotted = f"{package}.{module_info.name}.api"
        if importlib.util.find_spec(dotted) is None:
            logger.debug("plugin %s has no api module", module_info.name)
            continue
        module = importlib.import_module(dotted)
        module_blueprints = getattr(module, "blueprints", None)
        if module_blueprints:
            blueprints.extend(module_blueprints)
            continue
        blueprint = getattr(module, "bp", None)
        if blueprint is not None:
            blueprints.append(blueprint)
    return blueprints


def register_plugin_blueprints(app: Flask) -> None:
    for bp in _iter_blueprints():
        app.register_blueprint(bp)
        logger.info("registered blueprint %s at %s", bp.name, bp.url_prefix)


__all__ = ["register_plugin_blueprints"]
