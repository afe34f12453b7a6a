#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
"""
CLI for fmgate.

Commands:
    fmgate serve --port 8000                 Start OpenAI-compatible server
    fmgate models --base-url URL             List and check models served at URL

Usage:
    fmgate serve --localhost --models-config models.yaml
    fmgate models --base-url http://127.0.0.1:8000
"""

import argparse
import logging
import sys


def _resolve_bind_host(host: str, localhost: bool) -> str:
    """Resolve bind host with localhost profile precedence."""
    return "127.0.0.1" if localhost else host


def serve_command(args):
    """Start the OpenAI-compatible server."""
    import uvicorn

    from .config import build_server_config
    from .server import create_app

    logger = logging.getLogger(__name__)

    if args.timeout <= 0:
        print("Error: --timeout must be > 0")
        sys.exit(1)

    try:
        config = build_server_config(
            models_config=args.models_config,
            timeout=args.timeout,
        )
    except (KeyError, ValueError, ImportError, OSError) as e:
        print(f"Error: Failed to load model configuration: {e}")
        sys.exit(1)

    bind_host = _resolve_bind_host(args.host, args.localhost)
    logger.info(
        f"Starting fmgate on {bind_host}:{args.port} "
        f"models={config.model_names} timeout={config.timeout}s"
    )

    app = create_app(config)
    uvicorn.run(app, host=bind_host, port=args.port, log_level=args.log_level)


def models_command(args):
    """Print the models served by a running server, checking required ones."""
    from .models_client import DEFAULT_MODEL_IDS, ModelsContractError, fetch_catalog

    required = args.require if args.require is not None else DEFAULT_MODEL_IDS
    try:
        catalog = fetch_catalog(args.base_url, timeout=args.timeout, required=required)
    except ModelsContractError as e:
        print(f"Error: {e}")
        sys.exit(1)

    for model_id in catalog.ids:
        print(model_id)


def main():
    parser = argparse.ArgumentParser(
        description="fmgate: OpenAI-compatible gateway for foundation-model engines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fmgate serve --port 8000
  fmgate serve --localhost --models-config models.yaml
  fmgate models --base-url http://127.0.0.1:8000
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start OpenAI-compatible server")
    serve_parser.add_argument(
        "--host", type=str, default="0.0.0.0", help="Host to bind"
    )
    serve_parser.add_argument(
        "--localhost",
        action="store_true",
        help="Bind server to localhost only (127.0.0.1). Overrides --host.",
    )
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind")
    serve_parser.add_argument(
        "--models-config",
        type=str,
        default=None,
        help="Path to a YAML model table (models: {name: {engine: ..., ...}})",
    )
    serve_parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Request timeout in seconds for non-streaming requests (default: 300)",
    )
    serve_parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["critical", "error", "warning", "info", "debug"],
        help="Uvicorn log level (default: info)",
    )

    # Models command
    models_parser = subparsers.add_parser("models", help="List models of a running server")
    models_parser.add_argument(
        "--base-url",
        type=str,
        default="http://127.0.0.1:8000",
        help="Server base URL",
    )
    models_parser.add_argument(
        "--timeout", type=float, default=5.0, help="HTTP timeout in seconds"
    )
    models_parser.add_argument(
        "--require",
        action="append",
        default=None,
        metavar="MODEL",
        help="Model id the server must serve (repeatable; default: base, permissive)",
    )

    args = parser.parse_args()

    if args.command == "serve":
        serve_command(args)
    elif args.command == "models":
        models_command(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
