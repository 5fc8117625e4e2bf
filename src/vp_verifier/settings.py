"""
Runtime configuration and logging setup.

Every setting has a default and can be overridden from the environment:

- VP_VERIFIER_PROOF_MAX_AGE: maximum presentation proof age in seconds (3600)
- VP_VERIFIER_EXPIRY_WARNING_DAYS: expiring-soon warning window (30)
- VP_VERIFIER_HTTP_TIMEOUT: timeout for DID and revocation list fetches (30.0)
- VP_VERIFIER_VERIFY_SSL: verify certificates on outgoing requests (true)
- VP_VERIFIER_LOG_LEVEL: log level (WARNING)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from rich.console import Console
from rich.logging import RichHandler

ENV_PREFIX = "VP_VERIFIER_"


def interpret_as_bool(value: str | bool) -> bool:
    if isinstance(value, bool):
        return value
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class VerifierSettings:
    proof_max_age: int = 3600
    expiry_warning_days: int = 30
    http_timeout: float = 30.0
    verify_ssl: bool = True
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> VerifierSettings:
        """Build settings from environment variables.

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            proof_max_age=int(env.get(f"{ENV_PREFIX}PROOF_MAX_AGE", defaults.proof_max_age)),
            expiry_warning_days=int(
                env.get(f"{ENV_PREFIX}EXPIRY_WARNING_DAYS", defaults.expiry_warning_days)
            ),
            http_timeout=float(env.get(f"{ENV_PREFIX}HTTP_TIMEOUT", defaults.http_timeout)),
            verify_ssl=interpret_as_bool(env.get(f"{ENV_PREFIX}VERIFY_SSL", defaults.verify_ssl)),
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level).upper(),
        )


def configure_logging(level: str | int = "WARNING", console: Console | None = None) -> None:
    """Send package logs through rich to stderr."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
