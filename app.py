#!/usr/bin/env python3
"""
Alloy Procurement — Application Entry Point
Creates the Flask app and registers the API Blueprint.

For gunicorn: gunicorn "app:create_app()" (see Procfile)
"""

import os
import logging

from flask import Flask

from logging_config import setup_logging


def create_app(config: dict = None):
    """Application factory. Pass {"TESTING": True} to leave logging alone."""
    if not (config or {}).get("TESTING"):
        setup_logging()
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_UPLOAD_MB", 10)) * 1024 * 1024
    if config:
        app.config.update(config)

    from alloy.core.paths import ensure_dirs
    ensure_dirs()

    from alloy.api.dashboard import bp
    app.register_blueprint(bp)

    from alloy.api.security import init_security
    init_security(app)

    from alloy.core.secrets import startup_check
    startup_check()

    from alloy.core.flags import snapshot
    enabled = [name for name, on in snapshot().items() if on]
    logging.getLogger("alloy").info("Feature flags: %s", ", ".join(enabled) or "none")
    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 3001))
    create_app().run(host="0.0.0.0", port=port, debug=False)
