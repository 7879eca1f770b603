"""Command-line entry point: ``python -m kv_store``.

Flags override the KV_STORE_* environment settings. Credentials that are
neither passed nor configured are generated at random and logged at
startup, so the operator can reach the server.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from kv_store.adapters.inbound.rest_api import run_server
from kv_store.application import BulkOperationEngine
from kv_store.infrastructure.config import Config
from kv_store.infrastructure.logging import get_logger, setup_logging
from kv_store.infrastructure.metrics import get_metrics, setup_metrics
from kv_store.infrastructure.tracing import setup_tracing


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="kv_store", description="Run the key-value store server")
    parser.add_argument("--user", help="username for HTTP Basic auth")
    parser.add_argument("--pass", dest="password", help="password for HTTP Basic auth")
    parser.add_argument("--port", type=int, help="port to use for server")
    parser.add_argument("--host", help="interface to bind")
    parser.add_argument("--data-dir", type=Path, help="directory holding database files")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, base: Config | None = None) -> Config:
    """Merge command-line flags into the environment configuration."""
    config = base or Config()

    server_updates = {
        key: value
        for key, value in {
            "username": args.user,
            "password": args.password,
            "port": args.port,
            "host": args.host,
        }.items()
        if value is not None
    }
    server = config.server.model_copy(update=server_updates).with_generated_credentials()

    storage = config.storage
    if args.data_dir is not None:
        storage = storage.model_copy(update={"data_dir": args.data_dir})

    return config.model_copy(update={"server": server, "storage": storage})


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    base = Config()
    config = build_config(args, base)
    config.ensure_directories()

    observability = config.observability
    setup_logging(observability.log_level, observability.log_format)
    setup_tracing(observability.otel_service_name, observability.otel_endpoint)

    if config.server.metrics_enabled:
        metrics = setup_metrics(config.server.metrics_port)
    else:
        metrics = get_metrics()

    startup = {
        "address": f"{config.server.host}:{config.server.port}",
        "data_dir": str(config.storage.data_dir),
        "user": config.server.username,
    }
    if args.password is None and base.server.password is None:
        startup["generated_password"] = config.server.password

    logger = get_logger("kv_store")
    logger.info("server_starting", **startup)

    engine = BulkOperationEngine.from_config(config.storage, metrics=metrics)
    run_server(engine, config.server)


if __name__ == "__main__":
    main()
