# astroclock/main.py
from __future__ import annotations

import logging
import os
import traceback
from time import perf_counter
from typing import Final

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Gauge, Histogram, generate_latest
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from astroclock.api.routes import api as _routes_bp
from astroclock.core.timescales import delta_t_model
from astroclock.utils.config import apply_config, load_config
from astroclock.version import VERSION

# ───────────────────────── metrics ─────────────────────────
MET_REQUESTS: Final = Counter("astroclock_api_requests_total", "API requests", ["route"])
MET_ERRORS: Final = Counter("astroclock_api_errors_total", "API responses with ok=false", ["route", "status"])
GAUGE_APP_UP: Final = Gauge("astroclock_app_up", "1 if app is running")
REQ_LATENCY: Final = Histogram("astroclock_request_seconds", "API request latency", ["route"])

_TRACKED = ("/", "/health", "/healthz", "/metrics")

# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
        logging.getLogger("astroclock").setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

def _register_errors(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return jsonify(
            ok=False,
            error="http_error",
            code=e.code,
            name=e.name,
            message=e.description,
            path=request.path,
        ), e.code

    @app.errorhandler(Exception)
    def _any(e: Exception):
        tb = traceback.format_exc()
        app.logger.error("UNHANDLED %s at %s %s\n%s", type(e).__name__, request.method, request.path, tb)
        return jsonify(
            ok=False,
            error="internal_error",
            type=type(e).__name__,
            message=str(e),
            path=request.path,
        ), 500

# ───────────────────────── health ─────────────────────────
def _register_health(app: Flask) -> None:
    @app.route("/", methods=["GET"])
    def root():
        return jsonify(ok=True, service="astroclock", version=VERSION, health="/health"), 200

    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(ok=True, status="ok"), 200

def _metrics_auth_ok() -> bool:
    auth = request.authorization
    user = os.getenv("METRICS_USER", "")
    pw = os.getenv("METRICS_PASS", "")
    return bool(
        auth and auth.type == "basic" and auth.username == user and auth.password == pw and user and pw
    )

def _tracked(path: str) -> bool:
    return path.startswith("/api/") or path in _TRACKED

# ───────────────────────── app factory ─────────────────────────
def create_app() -> Flask:
    app = Flask(__name__)
    app.json.sort_keys = False
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    cfg = load_config()
    apply_config(cfg)
    app.config["ASTROCLOCK"] = cfg

    GAUGE_APP_UP.set(1.0)

    @app.before_request
    def _before():
        p = request.path or ""
        if _tracked(p):
            MET_REQUESTS.labels(route=p).inc()
            request.environ["astroclock.t0"] = perf_counter()

    @app.after_request
    def _after(resp):
        p = request.path or ""
        t0 = request.environ.get("astroclock.t0")
        if t0 is not None:
            REQ_LATENCY.labels(route=p).observe(perf_counter() - t0)
        if _tracked(p) and resp.status_code >= 400:
            MET_ERRORS.labels(route=p, status=str(resp.status_code)).inc()
        return resp

    _register_health(app)
    _register_errors(app)
    app.register_blueprint(_routes_bp)

    @app.get("/__debug/routes")
    def __debug_routes():
        rules = []
        for r in app.url_map.iter_rules():
            methods = sorted(m for m in (r.methods or []) if m not in ("HEAD", "OPTIONS"))
            rules.append({"rule": str(r), "endpoint": r.endpoint, "methods": methods})
        rules.sort(key=lambda x: x["rule"])
        return jsonify({"count": len(rules), "rules": rules}), 200

    # /metrics (Basic Auth)
    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        GAUGE_APP_UP.set(1.0)
        data = generate_latest(REGISTRY)
        return Response(data, mimetype=CONTENT_TYPE_LATEST)

    # CORS for browser watch-face previews
    allowed_origin = os.environ.get("CORS_ALLOW_ORIGIN") or "*"
    CORS(
        app,
        resources={r"/.*": {"origins": allowed_origin}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    app.logger.info("App initialized; version=%s delta_t_model=%s", VERSION, delta_t_model())
    return app

# ───────────────────────── app instance ─────────────────────────
app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
