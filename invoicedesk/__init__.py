from __future__ import annotations

import logging

from flask import Flask, jsonify

from .api import register_api, register_errors
from .brands import BUILTIN_BRANDS, BrandRegistry
from .config import Config
from .datasets import BRANDS_EXTENSION, SYNC_EXTENSION
from .extensions import db, migrate
from .sync.reconciler import SyncManager
from .utils.fonts import register_unicode_fonts


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    cfg = config_object or Config
    app.config.from_object(cfg)
    if not app.debug and not app.testing:
        app.logger.setLevel(logging.INFO)

    db.init_app(app)
    migrate.init_app(app, db)

    fonts = register_unicode_fonts(app.config.get("UNICODE_FONT_DIR"))
    app.extensions[BRANDS_EXTENSION] = BrandRegistry.build(BUILTIN_BRANDS, app.config["DEFAULT_BRAND"], fonts)
    app.extensions[SYNC_EXTENSION] = SyncManager.from_config(app.config)
    if not app.extensions[SYNC_EXTENSION].configured:
        app.logger.info("Supabase not configured; working from local storage only")

    register_api(app)
    register_errors(app)

    @app.get("/health")
    def health():
        manager = app.extensions[SYNC_EXTENSION]
        return jsonify({"status": "ok", "remote_sync": manager.configured})

    with app.app_context():
        db.create_all()

    return app
