"""CLI entrypoint for pushing deployments (pushdeploy config, pushdeploy [url])."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from pushdeploy.archive.codec import build_archive
from pushdeploy.client.config import load_config, save_config
from pushdeploy.client.transport import DEFAULT_TIMEOUT, send_deployment
from pushdeploy.core.exceptions import PushDeployError

ENTRY_SCRIPT = "DEPLOY.sh"

USAGE = """\
Usage: pushdeploy <server-url|config> [options]
Commands:
  pushdeploy config <api-key> <server-url>  - Set API key and server URL
  pushdeploy <server-url>                   - Deploy to specified server
  pushdeploy                                - Deploy using config server URL"""


def _config_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pushdeploy config", description="Persist API key and server URL")
    parser.add_argument("api_key", help="API key configured on the agent")
    parser.add_argument("server_url", help="Agent base URL, e.g. http://host:9999")
    return parser


def _deploy_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pushdeploy", description="Push the current directory to an agent")
    parser.add_argument("server_url", nargs="?", help="Agent base URL (defaults to the configured one)")
    parser.add_argument("--source", type=Path, default=None, help="Directory to deploy (default: cwd)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Request timeout in seconds")
    return parser


def _configure(argv: List[str]) -> int:
    args = _config_parser().parse_args(argv)
    try:
        save_config(args.api_key, args.server_url)
    except OSError as exc:
        print(f"Failed to save config: {exc}")
        return 1
    print("Configuration saved successfully")
    return 0


def _deploy(argv: List[str]) -> int:
    args = _deploy_parser().parse_args(argv)

    try:
        config = load_config()
    except PushDeployError as exc:
        print(f"Failed to load config: {exc}")
        print("Run 'pushdeploy config <api-key> <server-url>' to set your configuration")
        return 1

    server_url = args.server_url or config.server_url
    if not server_url:
        print("No server URL provided. Use 'pushdeploy <server-url>' or set it in config")
        return 1

    source = (args.source or Path.cwd()).resolve()
    if not (source / ENTRY_SCRIPT).is_file():
        print(f"{ENTRY_SCRIPT} not found in {source}")
        return 1

    print("Creating deployment package...")
    try:
        archive = build_archive(source)
    except OSError as exc:
        print(f"Failed to create deployment package: {exc}")
        return 1

    print(f"Sending deployment to {server_url}...")
    try:
        message = send_deployment(server_url, archive, config.api_key, timeout=args.timeout)
    except PushDeployError as exc:
        print(f"Failed to send deployment: {exc}")
        return 1

    print(message, end="" if message.endswith("\n") else "\n")
    print("Deployment sent successfully!")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    if argv and argv[0] == "help":
        print(USAGE)
        return 1
    if argv and argv[0] == "config":
        return _configure(argv[1:])
    return _deploy(argv)


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
