#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run connection tests or health probes against configured providers.")
    parser.add_argument("--config", required=True, help="Path to the providers JSON file.")
    parser.add_argument("--provider", action="append", default=[], help="Provider name (repeatable). Defaults to all.")
    parser.add_argument("--mode", choices=["health", "test"], default="health")
    args = parser.parse_args(argv)

    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))

    from gateway.core.logging_config import configure_logging
    from gateway.core.metrics import render_metrics
    from gateway.core.settings import get_settings
    from gateway.services.gateway_service import build_gateway

    settings = get_settings().model_copy(update={"providers_config_path": args.config})
    configure_logging(log_level=settings.log_level, app_env=settings.app_env)
    gateway = build_gateway(settings)
    names = args.provider or [provider.name for provider in gateway.registry.providers()]

    exit_code = 0
    try:
        for name in names:
            if args.mode == "health":
                result = gateway.probe_health(name)
                row = {
                    "provider": name,
                    "status": result.status,
                    "message": result.message,
                    "provider_status": result.provider_status.value if result.provider_status else None,
                }
                if result.status == "unhealthy":
                    exit_code = 1
            else:
                outcome = gateway.test_connection(name)
                row = {"provider": name, **asdict(outcome)}
                if not outcome.success:
                    exit_code = 1
            print(json.dumps(row, default=str))
    finally:
        gateway.close()
    if settings.metrics_enabled:
        body, _ = render_metrics()
        sys.stdout.write(body.decode("utf-8"))
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
