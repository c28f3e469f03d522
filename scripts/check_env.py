"""Verify that the service's environment configuration is intact.

Checks performed:

1. ``AppSettings`` is instantiated from the given ``.env`` file so missing or
   malformed entries (client credentials, base domain, storage paths) surface
   before the service fails at startup.
2. Optionally, a SHA256 checksum of the ``.env`` file is recorded or verified
   to catch unexpected edits.
3. ``discovery`` additionally fetches the identity provider's discovery
   document, the same request the service makes when it boots.

Example usages::

    python -m scripts.check_env record --env-file /srv/jukebox/.env \
        --hash-file /srv/jukebox/.env.sha256

    python -m scripts.check_env verify --env-file /srv/jukebox/.env \
        --hash-file /srv/jukebox/.env.sha256

    python -m scripts.check_env discovery --env-file /srv/jukebox/.env
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from app.clients.oidc_provider import ProviderDiscoveryError, fetch_provider_metadata
from app.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_DISCOVERY_ERROR = 4
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Baseline for {env_file} written to {hash_file}.")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"No baseline at {hash_file}; run 'record' first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    baseline = hash_file.read_text(encoding="utf-8").strip()
    current = _compute_hash(env_file)
    if baseline != current:
        print(
            f"{env_file} changed since the baseline was recorded "
            f"(baseline {baseline}, now {current}). "
            "Review the edit before restarting the profile service.",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR

    print(f"{env_file} matches its recorded checksum.")
    return EXIT_OK


def _check_discovery(settings: AppSettings) -> int:
    try:
        metadata = asyncio.run(
            fetch_provider_metadata(
                settings.oauth.discovery_url,
                timeout=settings.oauth.http_timeout_seconds,
            )
        )
    except ProviderDiscoveryError as exc:
        print(f"Provider discovery failed: {exc}", file=sys.stderr)
        return EXIT_DISCOVERY_ERROR
    print(f"Provider discovery OK ({metadata.issuer}).")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate required settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    for name, help_text in (
        ("record", "Validate settings and store the checksum baseline."),
        ("verify", "Validate settings and compare the checksum with the baseline."),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_env_file(subparser)
        subparser.add_argument("--hash-file", required=True, type=Path)

    add_env_file(subparsers.add_parser("check", help="Validate settings only."))
    add_env_file(
        subparsers.add_parser(
            "discovery", help="Validate settings and fetch the provider discovery document."
        )
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
        "discovery": lambda: _check_discovery(settings),
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
