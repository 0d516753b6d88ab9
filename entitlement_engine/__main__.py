"""Run the mock control server: ``python -m entitlement_engine``."""

import argparse
import os
import sys

import uvicorn

from entitlement_engine.config import ConfigurationError, get_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="entitlement-engine",
        description="Mock billing control server for local development",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"), help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")), help="Port (default: 8080)")
    parser.add_argument(
        "--config",
        default=os.getenv("ENTITLEMENT_CONFIG_PATH", "config/entitlement.yaml"),
        help="Path to entitlement.yaml (default: config/entitlement.yaml)",
    )
    parser.add_argument(
        "--platform",
        choices=["mobile-billing", "web-billing"],
        default=os.getenv("ENTITLEMENT_PLATFORM"),
        help="Runtime platform whose store slot the mock backend fills (default: from config)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
    )
    parser.add_argument("--log-format", choices=["json", "console"], default=os.getenv("LOG_FORMAT", "console"))
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Restart on code changes",
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()

    # The application module reads these when uvicorn imports it
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["ENTITLEMENT_CONFIG_PATH"] = args.config
    if args.platform:
        os.environ["ENTITLEMENT_PLATFORM"] = args.platform

    # Fail before binding the port when the configuration is broken
    try:
        config = get_config(args.config)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    if args.log_format == "console":
        print(f"Entitlement Engine mock control on http://{args.host}:{args.port}")
        print(f"  config:   {config.config_path}")
        print(f"  platform: {config.platform.value}")
        print(f"  products: {len(config.mock_settings.products)}")

    try:
        uvicorn.run(
            "entitlement_engine.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # ControlRequestMiddleware logs requests
        )
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
