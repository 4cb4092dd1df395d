#!/usr/bin/env python3
"""
License Gate web service
Serves license authorization checks and allow-list management over HTTP.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, jsonify

from database import init_database
from licensing.config import LicensingConfig

load_dotenv()

logger = logging.getLogger("license_gate")


def configure_logging(level: str = "INFO", log_dir: str = "") -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path / "license_gate.log"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def create_app(config: LicensingConfig | None = None, *, create_tables: bool = True) -> Flask:
    """Build the Flask app with the licensing blueprint registered."""
    import licensing.api as api_module

    config = config or LicensingConfig.from_env()
    configure_logging(config.log_level, config.log_dir)

    init_database(config.database_url, create_tables=create_tables)

    api_module._config = config
    api_module._evaluator = None
    api_module._reconciler = None
    api_module._allow_list = None

    app = Flask(__name__)
    app.register_blueprint(api_module.licensing_bp)

    @app.errorhandler(404)
    def not_found(_exc):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(_exc):
        return jsonify({"error": "Internal server error"}), 500

    logger.info("Router sync: %s", "enabled" if config.device.enabled else "disabled")
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=3000, debug=False)
