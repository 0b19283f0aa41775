"""Operator checks for the vault's environment configuration.

Subcommands:

``check``
    Load the ``.env`` file, build ``AppSettings`` and the token cipher from it,
    and print which store backend and scopes the service would run with. A
    missing client registration, a master key that is not 32 bytes of base64
    or a supabase backend without its URL and service key all fail here.
``record`` / ``verify``
    Run ``check``, then write or compare a SHA256 baseline of the ``.env``
    file. Rotating ``TOKEN_ENCRYPTION_KEY`` by accident makes every stored
    credential unreadable, so drift is reported before a restart.
``generate-key``
    Print a fresh master key for ``TOKEN_ENCRYPTION_KEY``.

Example::

    python -m scripts.check_env generate-key
    python -m scripts.check_env record --env-file /opt/vault/.env \
        --hash-file /opt/vault/.env.sha256
    python -m scripts.check_env verify --env-file /opt/vault/.env \
        --hash-file /opt/vault/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path

from pydantic import ValidationError

from oauth_vault.core.config import AppSettings, _load_env_file
from oauth_vault.services.token_cipher import TokenCipherService, generate_key

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _env_digest(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _validate_settings(env_file: Path) -> AppSettings:
    """Load ``env_file`` and build the settings and cipher the service would use."""
    if not env_file.is_file():
        raise FileNotFoundError(f"Environment file {env_file} does not exist.")
    _load_env_file(str(env_file))
    settings = AppSettings()  # type: ignore[call-arg]
    TokenCipherService.from_base64(settings.security.token_encryption_key)
    return settings


def _run_check(settings: AppSettings, args: argparse.Namespace) -> int:
    print(
        f"Settings OK: store={settings.store.backend}, "
        f"scopes={len(settings.oauth.scopes)}, environment={settings.environment}"
    )
    return EXIT_OK


def _run_record(settings: AppSettings, args: argparse.Namespace) -> int:
    digest = _env_digest(args.env_file)
    args.hash_file.write_text(f"{digest}\n", encoding="utf-8")
    print(f"Baseline {digest} written to {args.hash_file}")
    return EXIT_OK


def _run_verify(settings: AppSettings, args: argparse.Namespace) -> int:
    hash_file: Path = args.hash_file
    if not hash_file.is_file():
        print(
            f"No baseline at {hash_file}; run 'record' first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    baseline = hash_file.read_text(encoding="utf-8").strip()
    current = _env_digest(args.env_file)
    if baseline != current:
        print(
            f"{args.env_file} changed since the baseline was recorded "
            f"(baseline {baseline}, now {current}). "
            "If TOKEN_ENCRYPTION_KEY changed, stored credentials can no longer be decrypted.",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR
    print(f"{args.env_file} matches its baseline.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Check vault settings, track .env drift and generate master keys."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    env_file_option = argparse.ArgumentParser(add_help=False)
    env_file_option.add_argument(
        "--env-file",
        default=Path(".env"),
        type=Path,
        help="Environment file to load (default: ./.env).",
    )
    hash_file_option = argparse.ArgumentParser(add_help=False)
    hash_file_option.add_argument(
        "--hash-file",
        required=True,
        type=Path,
        help="SHA256 baseline of the environment file.",
    )

    commands.add_parser(
        "check", parents=[env_file_option], help="Validate settings only."
    ).set_defaults(handler=_run_check)
    commands.add_parser(
        "record",
        parents=[env_file_option, hash_file_option],
        help="Validate settings and write the checksum baseline.",
    ).set_defaults(handler=_run_record)
    commands.add_parser(
        "verify",
        parents=[env_file_option, hash_file_option],
        help="Validate settings and compare against the checksum baseline.",
    ).set_defaults(handler=_run_verify)
    commands.add_parser(
        "generate-key", help="Print a fresh base64 master key."
    ).set_defaults(handler=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.handler is None:
        print(generate_key())
        return EXIT_OK

    try:
        settings = _validate_settings(args.env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(f"Invalid vault settings:\n{exc.json(indent=2)}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except ValueError as exc:
        print(f"Invalid vault settings: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error while loading settings: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    return args.handler(settings, args)


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
