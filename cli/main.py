"""CLI entry point."""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from cli.config import DEFAULT_CONFIG_PATH, Config
from cli.uploader import UploaderClient, UploadError
from cli.utils import format_file_size
from common.logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chunkup", description="Upload files and folders in chunks")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    upload = sub.add_parser("upload", help="Upload a file or a folder")
    upload.add_argument("path", type=Path)
    upload.add_argument("--chunk-size", type=int, default=None, help="Bytes per chunk")
    upload.add_argument("--base-path", default=None, help="Folder name to store a folder upload under")
    upload.add_argument("--server", default=None, help="Gateway host[:port], overrides config")

    sub.add_parser("config", help="Show the active configuration")
    return parser


def _apply_server(config: Config, server: Optional[str]) -> None:
    if not server:
        return
    host, _, port = server.partition(":")
    config.data['server_host'] = host
    if port:
        config.data['server_port'] = int(port)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for CLI."""
    args = build_parser().parse_args(argv)
    log_level = 'DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level)

    config = Config(args.config)

    if args.command == "config":
        print(json.dumps(config.data, indent=2))
        return 0

    if not args.path.exists():
        print(f"Error: {args.path} does not exist", file=sys.stderr)
        return 2
    if args.chunk_size is not None and args.chunk_size <= 0:
        print("Error: --chunk-size must be positive", file=sys.stderr)
        return 2

    _apply_server(config, args.server)

    try:
        with UploaderClient(config) as client:
            results = client.upload_path(args.path, chunk_size=args.chunk_size, base_name=args.base_path)
    except (UploadError, ConnectionError) as e:
        logger.error(f"Upload failed: {e}")
        print(f"Upload failed: {e}", file=sys.stderr)
        return 1

    for result in results:
        print(f"{result.relative_path} ({format_file_size(result.size)}) -> {result.url}")
    print(f"{len(results)} file(s) uploaded")
    return 0


if __name__ == "__main__":
    sys.exit(main())
