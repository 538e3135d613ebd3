from flask import Flask, current_app, jsonify

from .pdf_service import RenderError
from .utils.csv_import import CSVImportError
from .utils.exports import BatchPreconditionError


def register_api(app: Flask):
    from .books.routes import books_bp
    from .customers.routes import customers_bp
    from .drafts.routes import drafts_bp
    from .invoice.routes import invoice_bp
    from .settings.routes import settings_bp
    from .sync.routes import sync_bp

    for blueprint in (books_bp, customers_bp, invoice_bp, drafts_bp, sync_bp, settings_bp):
        app.register_blueprint(blueprint)


def register_errors(app: Flask):
    @app.errorhandler(CSVImportError)
    @app.errorhandler(BatchPreconditionError)
    def rejected(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(RenderError)
    def render_failed(e):
        current_app.logger.exception("Invoice rendering failed")
        return jsonify({"error": f"Unable to render invoice: {e}"}), 500

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not found"}), 404

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({"error": "bad request"}), 400

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": "upload too large"}), 413

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "server error"}), 500
