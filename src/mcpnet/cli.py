"""
Command-line entry points.

Usage:
    # Serve every provider in ./mcps over HTTP on :8080
    mcpnet-server --mcp-dir ./mcps

    # Same, over stdin/stdout
    mcpnet-server --mcp-dir ./mcps --stdio

    # Install the example providers first
    mcpnet-server --mcp-dir ./mcps --install-examples

    # Settings from a YAML file, flags win
    mcpnet-server --config mcpnet.yaml --http 127.0.0.1:9000

    # Bridge a stdio client to a running HTTP server
    mcpnet-proxy --endpoint http://localhost:8080
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from .config import ProxyConfig, ServerConfig
from .errors import DiscoveryError

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    # stdout carries protocol traffic in stdio mode
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


# ── mcpnet-server ────────────────────────────────────────────

def build_server_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcpnet-server",
        description="Serve the tools of every provider executable in a directory.",
    )
    parser.add_argument("--config", help="YAML file with server settings")
    parser.add_argument("--mcp-dir", help="Directory containing MCP executables (default: ./mcps)")
    parser.add_argument("--http", dest="http_addr", help="HTTP server address (default: :8080)")
    parser.add_argument("--name", help="Name of the MCP server")
    parser.add_argument("--version", help="Version of the MCP server")
    parser.add_argument("--stdio", action="store_true", default=None,
                        help="Use stdio instead of HTTP")
    parser.add_argument("--invoke-timeout", type=float,
                        help="Seconds allowed for one tool call (default: unbounded)")
    parser.add_argument("--strict", dest="strict_identifiers", action="store_true", default=None,
                        help="Fail when two executables map to the same identifier")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    parser.add_argument("--install-examples", action="store_true",
                        help="Install the example providers into the MCP directory")
    return parser


def load_server_config(args: argparse.Namespace) -> ServerConfig:
    config = ServerConfig.from_yaml(args.config) if args.config else ServerConfig()
    return config.merged(
        mcp_dir=args.mcp_dir,
        http_addr=args.http_addr,
        name=args.name,
        version=args.version,
        stdio=args.stdio,
        invoke_timeout=args.invoke_timeout,
        strict_identifiers=args.strict_identifiers,
        log_level=args.log_level,
    )


def ensure_mcp_dir(path: str) -> str:
    """Create the provider directory if needed and return its absolute path."""
    if not os.path.exists(path):
        logger.warning(f"MCP directory does not exist: {path}")
        os.makedirs(path, mode=0o755)
        logger.info(f"Created MCP directory: {path}")
    return str(Path(path).resolve())


def server_main(argv: list[str] | None = None) -> int:
    args = build_server_parser().parse_args(argv)

    try:
        config = load_server_config(args)
        config.validate()
    except (FileNotFoundError, ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _setup_logging(config.log_level)

    try:
        config = config.merged(mcp_dir=ensure_mcp_dir(config.mcp_dir))
        if args.install_examples:
            from .mcp.servers import install_examples
            install_examples(config.mcp_dir)
    except OSError as e:
        logger.error(f"Failed to prepare MCP server: {e}")
        return 1

    try:
        from .server import run
        asyncio.run(run(config))
    except DiscoveryError as e:
        logger.error(f"Failed to load MCPs: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    return 0


# ── mcpnet-proxy ─────────────────────────────────────────────

def build_proxy_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcpnet-proxy",
        description="Forward newline-delimited JSON-RPC from stdin to an HTTP endpoint.",
    )
    parser.add_argument("--config", help="YAML file with proxy settings")
    parser.add_argument("--endpoint", help="HTTP endpoint to proxy requests to "
                                           "(default: http://localhost:8080)")
    parser.add_argument("--content-type", help="Content-Type header for HTTP requests")
    parser.add_argument("--timeout", type=float, help="HTTP request timeout in seconds")
    parser.add_argument("--log-level", default="INFO")
    return parser


def proxy_main(argv: list[str] | None = None) -> int:
    args = build_proxy_parser().parse_args(argv)
    _setup_logging(args.log_level)

    try:
        config = ProxyConfig.from_yaml(args.config) if args.config else ProxyConfig()
    except (FileNotFoundError, ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    config = config.merged(
        endpoint=args.endpoint,
        content_type=args.content_type,
        timeout=args.timeout,
    )

    from .proxy import run_proxy
    try:
        asyncio.run(run_proxy(config))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(server_main())
