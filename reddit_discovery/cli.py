from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .config import load_config
from .config_schema import AppConfig
from .errors import ConfigError, FetchError, StorageError
from .fetcher import RedditListingFetcher
from .rate_policy import RatePolicy
from .request_schema import DiscoveryRequest
from .run_log import RunLogger
from .runner import run_discovery
from .storage import ItemStore, NullItemStore, SQLiteItemStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reddit_discovery")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser(
        "run",
        help="Run one discovery pass over the given communities.",
    )
    run.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    run.add_argument(
        "--out",
        required=True,
        help="Output directory for state and logs.",
    )
    run.add_argument(
        "--keyword",
        action="append",
        dest="keywords",
        default=None,
        help="Keyword to match in titles (repeatable). Defaults to discovery.keywords.",
    )
    run.add_argument(
        "--community",
        action="append",
        dest="communities",
        default=None,
        help="Subreddit to poll (repeatable). Defaults to discovery.communities.",
    )
    run.add_argument(
        "--window",
        default=None,
        help="Time window such as 24h, 7d or 2w. Defaults to discovery.window.",
    )
    run.add_argument(
        "--offline",
        action="store_true",
        help="Serve canned listings instead of calling Reddit.",
    )
    run.set_defaults(_handler=_cmd_run)

    serve = subparsers.add_parser(
        "serve",
        help="Start the HTTP trigger server.",
    )
    serve.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    serve.add_argument(
        "--out",
        required=True,
        help="Output directory for state and logs.",
    )
    serve.add_argument("--host", default=None, help="Bind address. Defaults to server.host.")
    serve.add_argument("--port", type=int, default=None, help="Port. Defaults to server.port.")
    serve.add_argument(
        "--offline",
        action="store_true",
        help="Serve canned listings instead of calling Reddit.",
    )
    serve.set_defaults(_handler=_cmd_serve)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _build_fetcher(cfg: AppConfig, *, offline: bool, logger: RunLogger) -> RedditListingFetcher:
    if offline:
        from .offline import OfflineClock, OfflineRedditSession

        clock = OfflineClock()
        return RedditListingFetcher(
            cfg.reddit,
            policy=RatePolicy(cfg.rate_limit, clock=clock),
            session=OfflineRedditSession(),  # type: ignore[arg-type]
            logger=logger,
            sleep_fn=clock.sleep,
        )
    return RedditListingFetcher(cfg.reddit, policy=RatePolicy(cfg.rate_limit), logger=logger)


def _open_store(cfg: AppConfig, out_dir: Path) -> ItemStore:
    if not cfg.store.enabled:
        return NullItemStore()
    return SQLiteItemStore.open(out_dir / cfg.store.filename)


def _cmd_run(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info(
            "run_command_started",
            config_path=str(args.config),
            out_dir=str(out_dir),
            offline=bool(args.offline),
        )

        try:
            cfg = load_config(args.config)
            log.info("config_loaded", config_path=str(args.config), store_enabled=cfg.store.enabled)

            req = DiscoveryRequest(
                keywords=list(args.keywords or cfg.discovery.keywords),
                communities=list(args.communities or cfg.discovery.communities),
                window=args.window or cfg.discovery.window,
                source="manual",
            )

            fetcher = _build_fetcher(cfg, offline=bool(args.offline), logger=log)
            with _open_store(cfg, out_dir) as store:
                result = run_discovery(req, config=cfg, fetcher=fetcher, store=store, logger=log)

            log.info(
                "run_command_completed",
                run_id=result.run_id,
                status=result.status,
                posts_found=result.posts_found,
                inserted=result.inserted,
            )

            print(f"status={result.status}")
            print(f"run_id={result.run_id}")
            print(f"posts_found={result.posts_found}")
            print(f"inserted={result.inserted}")
            for community, count in sorted(result.by_community().items()):
                print(f"by_community.{community}={count}")
            if result.error:
                print(f"error={result.error}")
            print(f"run_log={log_path}")

            return 0 if result.status == "completed" else 4
        except Exception as e:
            log.exception("run_command_failed", exc=e)
            raise


def _cmd_serve(args: argparse.Namespace) -> int:
    from .server import create_app

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    cfg = load_config(args.config)

    # Fail fast on an unusable database before binding the port.
    with _open_store(cfg, out_dir):
        pass

    host = args.host or cfg.server.host
    port = int(args.port or cfg.server.port)

    with RunLogger.open(out_dir / "server.log", overwrite=False) as log:
        fetcher = _build_fetcher(cfg, offline=bool(args.offline), logger=log)
        app = create_app(
            cfg,
            store_factory=lambda: _open_store(cfg, out_dir),
            fetcher=fetcher,
            logger=log,
        )
        log.info("server_started", host=host, port=port, offline=bool(args.offline))
        print(f"Listening on http://{host}:{port}")
        app.run(host=host, port=port)
        log.info("server_stopped")

    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (StorageError, FetchError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
