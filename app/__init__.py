"""Application factory for the ML Pipeline server."""

from __future__ import annotations

import importlib
import os
import pkgutil
from pathlib import Path
from typing import Iterable

import yaml
from flask import Flask

from common.errors import InternalAppError, NotFoundAppError, ValidationAppError
from common.logging import get_logger, install_request_logging
from common.responses import fail, ok

from . import config as config_module
from .blueprints import register_plugin_blueprints

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yml"
CONFIG_ENV = "ML_PIPELINE_CONFIG"

logger = get_logger("app")


def _config_path() -> Path:
    override = os.environ.get(CONFIG_ENV)
    return Path(override) if override else CONFIG_PATH


def _load_yaml_config() -> dict:
    path = _config_path()
    if not path.exists():
        logger.warning("config file %s not found; using built-in defaults", path)
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _discover_plugins(package: str = "plugins") -> Iterable[str]:
    """Yield import paths for all plugin packages."""

    package_path = Path(__file__).resolve().parent.parent / package
    if not package_path.exists():
        return []
    for module_info in pkgutil.iter_modules([str(package_path)]):
        if module_info.ispkg:
            yield f"{package}.{module_info.name}"


def _load_manifests() -> list[dict[str, str]]:
    manifests: list[dict[str, str]] = []
    for dotted in _discover_plugins():
        module = importlib.import_module(dotted)
        manifest = getattr(module, "manifest", None)
        if manifest:
            manifests.append(dict(manifest))
    manifests.sort(key=lambda item: item["title"].lower())
    return manifests


def create_app(config_name: str | None = None) -> Flask:
    """Create and configure the Flask application instance."""

    app = Flask(__name__)
    app.config.from_object(config_module.BaseConfig)

    yaml_config = _load_yaml_config()
    site_settings = yaml_config.get("site", {}) or {}
    plugin_settings = yaml_config.get("plugins", {}) or {}

    app.config["SITE_SETTINGS"] = site_settings
    if "max_content_length_mb" in site_settings:
        try:
            max_bytes = int(float(site_settings["max_content_length_mb"]) * 1024 * 1024)
            app.config["MAX_CONTENT_LENGTH"] = max_bytes
        except (TypeError, ValueError):
            logger.warning("ignoring invalid max_content_length_mb: %r", site_settings["max_content_length_mb"])

    app.config["PLUGIN_SETTINGS"] = plugin_settings

    if config_name:
        config_obj = getattr(config_module, config_name, None)
        if config_obj:
            app.config.from_object(config_obj)

    install_request_logging(app)
    register_plugin_blueprints(app)

    @app.after_request
    def apply_response_headers(response):
        """Attach strict security headers to every outgoing response."""

        configured = app.config.get("RESPONSE_HEADERS", {})
        for header, value in configured.items():
            if header not in response.headers:
                response.headers[header] = value
        return response

    manifests = _load_manifests()
    for manifest in manifests:
        blueprint = manifest.get("blueprint")
        plugin_config = plugin_settings.get(blueprint, {}) if blueprint else {}
        if plugin_config.get("summary"):
            manifest["summary"] = plugin_config["summary"]
        if blueprint:
            manifest["api"] = f"/api/{blueprint}"
    app.config["PLUGIN_MANIFESTS"] = manifests

    @app.route("/")
    def home():
        return ok(
            {
                "site": {"title": site_settings.get("title", "ML Pipeline Builder")},
                "plugins": app.config.get("PLUGIN_MANIFESTS", []),
            }
        )

    @app.errorhandler(404)
    def not_found(error):
        return fail(NotFoundAppError(message="Resource not found", code="not_found"))

    @app.errorhandler(405)
    def method_not_allowed(error):
        return fail(ValidationAppError(message="Method not allowed", code="method_not_allowed"), status=405)

    @app.errorhandler(413)
    def payload_too_large(error):
        return fail(ValidationAppError(message="Upload exceeds the allowed size", code="payload_too_large"), status=413)

    @app.errorhandler(500)
    def server_error(error):  # pragma: no cover
        return fail(InternalAppError(message="Internal server error", code="internal_error"))

    logger.info("application ready with %d plugin(s)", len(manifests))
    return app


__all__ = ["create_app"]
