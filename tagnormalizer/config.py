"""Runtime configuration, logging setup and the operator console.

Every setting can come from the environment; command line flags override
what the environment provides.

    DRY_RUN             "true" (default) previews changes, "false" applies them
    LOG_LEVEL           logging level name, default INFO
    LOG_DIR             directory for the run log file; unset logs to stderr only
    OUTPUT_DIR          where result CSV/JSON files land, default ./outputs
    MAX_WORKERS         resources processed concurrently, default 1
    RESOURCE_TIMEOUT    per-resource deadline in seconds, unset for none
    RETRY_MAX_ATTEMPTS  attempts per provider call, default 5
    RETRY_BASE_DELAY    first backoff delay in seconds, default 1.0
"""

from __future__ import annotations

import datetime
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from rich.console import Console
from rich.markup import escape

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

console = Console()
log = logging.getLogger("tagnormalizer")


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(env: Mapping[str, str], name: str) -> Optional[float]:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


def timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d_%H%M%S")


@dataclass(frozen=True)
class Settings:
    dry_run: bool = True
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    output_dir: str = "./outputs"
    max_workers: int = 1
    resource_timeout: Optional[float] = None
    retry_max_attempts: int = 5
    retry_base_delay: float = 1.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            dry_run=_env_bool(env, "DRY_RUN", True),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_dir=env.get("LOG_DIR") or None,
            output_dir=env.get("OUTPUT_DIR", "./outputs"),
            max_workers=int(env.get("MAX_WORKERS", "1")),
            resource_timeout=_env_optional_float(env, "RESOURCE_TIMEOUT"),
            retry_max_attempts=int(env.get("RETRY_MAX_ATTEMPTS", "5")),
            retry_base_delay=float(env.get("RETRY_BASE_DELAY", "1.0")),
        )

    def default_output_path(self, suffix: str = "csv") -> str:
        mode = "dryrun" if self.dry_run else "apply"
        return os.path.join(self.output_dir, f"tag_normalization_{mode}_{timestamp()}.{suffix}")


def setup_logging(settings: Settings) -> Optional[Path]:
    """Configure root logging once; returns the log file path if one is used."""
    level = getattr(logging, settings.log_level, logging.INFO)
    log_file = None
    if settings.log_dir:
        Path(settings.log_dir).mkdir(parents=True, exist_ok=True)
        log_file = Path(settings.log_dir) / f"tag_normalization_{timestamp()}.log"
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    # SDK request logging is far too chatty at INFO
    logging.getLogger("azure").setLevel(max(level, logging.WARNING))
    logging.getLogger("botocore").setLevel(max(level, logging.WARNING))
    return log_file


def audit(msg: str, style: str = "bold cyan") -> None:
    console.print(f"[{style}]{escape(msg)}[/{style}]")
    log.info(msg)
