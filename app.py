from flask import Flask, jsonify, request, send_from_directory, abort
import logging
import os
from datetime import datetime, timezone
from config import Config
from extensions import db, migrate
from routes.rekon_routes import rekon_bp
from routes.import_routes import import_bp
from routes.report_routes import report_bp
from routes.student_routes import student_bp
from routes.analytics import dashboard_bp
from utils.errors import SppRekonError
from utils.import_jobs import get_scheduler
from utils.rekon_log import rekon_logger
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import secure_filename

app = Flask(__name__)

# Load configuration from Config (env / .env driven)
app.config.from_object(Config)

logging.basicConfig(
    level=app.config.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

# Trust reverse proxy headers for scheme/host when enabled
if app.config.get("TRUST_PROXY", True):
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[assignment]

db.init_app(app)
migrate.init_app(app, db)

with app.app_context():
    import models  # noqa: F401 - register tables on the metadata
    try:
        db.create_all()
    except Exception as e:
        app.logger.warning("create_all skipped: %s", e)


# Set security headers on every response
@app.after_request
def _set_security_headers(resp):
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return resp


app.register_blueprint(rekon_bp)
app.register_blueprint(import_bp)
app.register_blueprint(report_bp)
app.register_blueprint(student_bp)
app.register_blueprint(dashboard_bp)


@app.route("/api/health")
def health():
    """Liveness probe. Does not touch the database."""
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app.config.get("APP_VERSION", "1.0.0"),
    })


@app.route("/exports/<path:filename>")
def download_export(filename):
    safe = secure_filename(filename)
    if not safe or safe != filename:
        rekon_logger.log_security("Rejected export download path", {
            "requested": filename,
            "remote_addr": request.remote_addr,
        })
        abort(404)
    return send_from_directory(app.config["EXPORT_DIR"], safe, as_attachment=True)


# ---------- Error handling ----------
@app.errorhandler(SppRekonError)
def _handle_rekon_error(e: SppRekonError):
    app.logger.log(e.log_level, "%s %s: %s", e.error_code, type(e).__name__, e.message, extra={
        "path": request.path,
        "context": e.context,
    })
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(404)
def _not_found(e):
    if request.path.startswith("/api/"):
        message = "API endpoint not found"
    else:
        message = "Halaman tidak ditemukan"
    return jsonify({"success": False, "message": message, "path": request.path}), 404


@app.errorhandler(Exception)
def _unhandled(e):
    if isinstance(e, HTTPException):
        return jsonify({"success": False, "message": e.description}), e.code
    app.logger.exception("Unhandled error on %s", request.path)
    return jsonify({
        "success": False,
        "message": "Terjadi kesalahan pada server. Silakan coba beberapa saat lagi.",
    }), 500


# Background worker for large imports
if app.config.get("START_SCHEDULER", True):
    try:
        get_scheduler()
    except Exception as _e:
        app.logger.warning("[scheduler] not started: %s", _e)

if __name__ == "__main__":
    os.makedirs(app.config["EXPORT_DIR"], exist_ok=True)
    app.run(debug=True)
