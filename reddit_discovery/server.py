"""HTTP surface for triggering discovery runs and reading their results."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable

from flask import Flask, Response, jsonify, request
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import StorageError
from .fetcher import RedditListingFetcher
from .request_schema import DiscoveryRequest, PreviewRequest
from .run_log import RunLogger
from .runner import DiscoveryResult, run_discovery
from .storage import ItemStore, NullItemStore

StoreFactory = Callable[[], ItemStore]

_MAX_RUNS_LISTED = 200
_SUMMARY_POSTS = 20


def _validation_message(err: ValidationError) -> str:
    parts: list[str] = []
    for item in err.errors():
        loc = ".".join(str(p) for p in item.get("loc", [])) or "<body>"
        parts.append(f"{loc}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


def _bad_request(message: str) -> Response:
    resp = jsonify({"error": message})
    resp.status_code = 400
    return resp


def create_app(
    config: AppConfig,
    *,
    store_factory: StoreFactory,
    fetcher: RedditListingFetcher,
    logger: RunLogger | None = None,
) -> Flask:
    """
    Build the Flask app.

    A store is opened per request so SQLite connections never cross threads;
    runs are serialized because the rate policy is shared.
    """
    log = logger or RunLogger.disabled()
    fetcher.set_logger(log)
    run_lock = Lock()

    app = Flask(__name__)
    app.json.sort_keys = False

    @app.route("/run/reddit", methods=["POST"])
    def trigger_run():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            log.warning("trigger_rejected", reason="body_not_object")
            return _bad_request("request body must be a JSON object")

        try:
            req = DiscoveryRequest.model_validate(body)
        except ValidationError as e:
            message = _validation_message(e)
            log.warning("trigger_rejected", reason="invalid_body", error=message)
            return _bad_request(message)

        log.info(
            "trigger_received",
            source=req.source,
            keywords=req.keywords,
            communities=req.communities,
            window=req.window,
        )

        with run_lock:
            with store_factory() as store:
                result = run_discovery(
                    req,
                    config=config,
                    fetcher=fetcher,
                    store=store,
                    logger=log,
                )

        log.info(
            "trigger_completed",
            run_id=result.run_id,
            status=result.status,
            posts_found=result.posts_found,
        )
        return jsonify(result.to_response())

    def _run_preview() -> DiscoveryResult | Response:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            log.warning("preview_rejected", reason="body_not_object")
            return _bad_request("request body must be a JSON object")

        try:
            preq = PreviewRequest.model_validate(body)
        except ValidationError as e:
            message = _validation_message(e)
            log.warning("preview_rejected", reason="invalid_body", error=message)
            return _bad_request(message)

        with run_lock:
            result = run_discovery(
                preq.to_discovery_request(),
                config=config,
                fetcher=fetcher,
                store=NullItemStore(),
                logger=log,
            )
        log.info("preview_completed", status=result.status, posts_found=result.posts_found)
        return result

    @app.route("/api/scrape/reddit", methods=["POST"])
    def scrape_preview():
        result = _run_preview()
        if isinstance(result, Response):
            return result
        payload: dict[str, Any] = {
            "success": result.status == "completed",
            "count": result.posts_found,
            "bySubreddit": result.by_community(),
            "posts": [p.to_dict() for p in result.posts],
        }
        if result.error:
            payload["error"] = result.error
        return jsonify(payload)

    @app.route("/api/run", methods=["POST"])
    def run_summary():
        result = _run_preview()
        if isinstance(result, Response):
            return result
        payload: dict[str, Any] = {
            "success": result.status == "completed",
            "totalPosts": result.posts_found,
            "bySubreddit": result.by_community(),
            "posts": [p.to_dict() for p in result.posts[:_SUMMARY_POSTS]],
        }
        if result.error:
            payload["error"] = result.error
        return jsonify(payload)

    @app.errorhandler(StorageError)
    def storage_unavailable(err: StorageError):
        log.warning("store_unavailable", path=request.path, error=str(err))
        return jsonify({"error": f"store unavailable: {err}"}), 503

    @app.route("/api/runs")
    def list_runs():
        limit = request.args.get("limit", default=20, type=int) or 20
        limit = max(1, min(limit, _MAX_RUNS_LISTED))
        with store_factory() as store:
            runs = store.recent_runs(limit=limit)
        return jsonify({"runs": [r.to_dict() for r in runs]})

    @app.route("/api/runs/<run_id>")
    def get_run(run_id: str):
        with store_factory() as store:
            run = store.get_run(run_id)
            if run is None:
                return jsonify({"error": f"run not found: {run_id}"}), 404
            items = store.items_for_run(run_id)
        return jsonify({"run": run.to_dict(), "items": [i.to_dict() for i in items]})

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    return app
