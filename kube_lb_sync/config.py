"""
Configuration and logging setup.

Loads configuration from environment variables into a typed dataclass;
command-line flags override the environment.
"""

import argparse
import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import List, Optional

CHANGE_MODES = ("ordered", "semantic")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer (got {raw!r})")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise SystemExit(f"{name} must be a number (got {raw!r})")


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "false").strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Config:
    """Immutable configuration loaded from environment variables and flags."""

    kubeconfig: str
    template_file: str
    config_file: str
    reload_script: str
    sync_period: int
    reload_timeout: float
    fetch_retries: int
    fetch_backoff: float
    api_timeout: float
    change_detection: str
    verbose: bool

    @classmethod
    def from_env(cls) -> "Config":
        """Build a Config from the current environment, with validation."""
        kubeconfig = os.environ.get("KUBECONFIG", "").strip()
        if not kubeconfig:
            kubeconfig = os.path.join(os.path.expanduser("~"), ".kube", "config")
        # KUBECONFIG may hold a path list; the first entry wins
        kubeconfig = kubeconfig.split(os.pathsep)[0]

        config = cls(
            kubeconfig=kubeconfig,
            template_file=os.environ.get("TEMPLATE_FILE", "config.tmpl"),
            config_file=os.environ.get("CONFIG_FILE", "config.conf"),
            reload_script=os.environ.get("RELOAD_SCRIPT", "./reload.sh"),
            sync_period=_env_int("SYNC_PERIOD_SECONDS", 10),
            reload_timeout=_env_float("RELOAD_TIMEOUT_SECONDS", 60.0),
            fetch_retries=_env_int("FETCH_RETRIES", 0),
            fetch_backoff=_env_float("FETCH_BACKOFF_SECONDS", 1.0),
            api_timeout=_env_float("API_TIMEOUT_SECONDS", 10.0),
            change_detection=os.environ.get("CHANGE_DETECTION", "ordered").strip().lower(),
            verbose=_env_bool("DEBUG"),
        )
        config.validate()
        return config

    @classmethod
    def from_args(cls, argv: Optional[List[str]] = None) -> "Config":
        """Build a Config from the environment, then apply command-line overrides."""
        base = cls.from_env()

        p = argparse.ArgumentParser(
            prog="kube-lb-sync",
            description="Render a load-balancer configuration from Kubernetes LoadBalancer services",
        )
        p.add_argument("--kubeconfig", help=f"Cluster access configuration (default: {base.kubeconfig})")
        p.add_argument("--tmpl-file", dest="template_file", help="Template file to load")
        p.add_argument("--config-file", dest="config_file", help="Configuration file to write")
        p.add_argument("--reload-script", dest="reload_script", help="Reload script to launch")
        p.add_argument("--sync-period", dest="sync_period", type=int, help="Seconds between updates")
        p.add_argument("--reload-timeout", dest="reload_timeout", type=float,
                       help="Seconds before the reload script is killed (0 disables)")
        p.add_argument("--fetch-retries", dest="fetch_retries", type=int,
                       help="Extra attempts for a failed periodic fetch")
        p.add_argument("--fetch-backoff", dest="fetch_backoff", type=float,
                       help="Initial backoff in seconds between fetch attempts")
        p.add_argument("--api-timeout", dest="api_timeout", type=float, help="Cluster API request timeout")
        p.add_argument("--change-detection", dest="change_detection", choices=CHANGE_MODES,
                       help="How to compare exposure sets between cycles")
        p.add_argument("-v", "--verbose", action="store_true", default=None, help="Debug logging")

        args = p.parse_args(argv)
        overrides = {k: v for k, v in vars(args).items() if v is not None}
        config = dataclasses.replace(base, **overrides)
        config.validate()
        return config

    def validate(self) -> None:
        if self.sync_period <= 0:
            raise SystemExit(f"sync period must be positive (got {self.sync_period})")
        if self.reload_timeout < 0:
            raise SystemExit(f"reload timeout must not be negative (got {self.reload_timeout})")
        if self.fetch_retries < 0:
            raise SystemExit(f"fetch retries must not be negative (got {self.fetch_retries})")
        if self.api_timeout <= 0:
            raise SystemExit(f"API timeout must be positive (got {self.api_timeout})")
        if self.change_detection not in CHANGE_MODES:
            raise SystemExit(
                f"CHANGE_DETECTION must be one of {', '.join(CHANGE_MODES)} "
                f"(got {self.change_detection!r})"
            )


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure and return the application logger."""
    logger = logging.getLogger("kube_lb_sync")
    logger.setLevel(logging.DEBUG)

    # Console handler: INFO and above, everything when verbose
    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    fmt = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    console.setFormatter(fmt)
    logger.addHandler(console)

    # File handler: DEBUG only
    if verbose:
        debug_file = logging.FileHandler("debug.log")
        debug_file.setLevel(logging.DEBUG)
        debug_file.addFilter(lambda record: record.levelno == logging.DEBUG)
        debug_file.setFormatter(fmt)
        logger.addHandler(debug_file)

    return logger
