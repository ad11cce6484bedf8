"""
Config applier.

Renders the proxy template against the current ExposureRecords, replaces
the output file and runs the reload script.

Order of side effects:
  1. load + render the template  (failure: RenderError, nothing touched)
  2. write the output atomically (failure: WriteError, no reload)
  3. run the reload script       (failure: logged, never raised or retried)

Rendering and reloading are injected so the applier can be driven without
Jinja2 templates on disk or a real executable.
"""

import logging
import os
import stat
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

import jinja2

from .config import Config
from .errors import RenderError, WriteError
from .records import ExposureRecord

logger = logging.getLogger("kube_lb_sync")


class Renderer(Protocol):
    def render(self, records: Sequence[ExposureRecord], template_text: str) -> bytes:
        ...


class Reloader(Protocol):
    def run(self) -> Tuple[str, Optional[int]]:
        ...


@dataclass(frozen=True)
class ReloadResult:
    ok: bool
    exit_code: Optional[int]
    output: str


# ── Rendering ─────────────────────────────────────────────────


class JinjaRenderer:
    """Renders a Jinja2 template with a single `services` binding."""

    def __init__(self) -> None:
        self._env = jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def render(self, records: Sequence[ExposureRecord], template_text: str) -> bytes:
        try:
            template = self._env.from_string(template_text)
            return template.render(services=list(records)).encode("utf-8")
        except jinja2.TemplateError as e:
            raise RenderError(f"template rendering failed: {e}") from e
        except Exception as e:
            # errors raised while evaluating template expressions
            raise RenderError(f"template rendering failed: {type(e).__name__}: {e}") from e


# ── Reloading ─────────────────────────────────────────────────


class CommandReloader:
    """
    Runs the reload executable with no arguments.

    Returns (combined stdout+stderr, exit code). The exit code is None when
    the executable could not be started or was killed on timeout.
    """

    def __init__(self, command: str, timeout: Optional[float] = None) -> None:
        self._command = command
        self._timeout = timeout or None

    def run(self) -> Tuple[str, Optional[int]]:
        logger.debug(f"CommandReloader.run: {self._command} (timeout={self._timeout})")
        try:
            cp = subprocess.run(
                [self._command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            out = e.output.decode("utf-8", errors="replace") if e.output else ""
            return f"{out}killed after {self._timeout}s timeout", None
        except OSError as e:
            return f"cannot execute {self._command}: {e}", None
        return cp.stdout.decode("utf-8", errors="replace"), cp.returncode


# ── Applier ───────────────────────────────────────────────────


class ConfigApplier:
    """Writes the rendered configuration and triggers a proxy reload."""

    def __init__(
        self,
        template_path: str,
        output_path: str,
        renderer: Renderer,
        reloader: Reloader,
    ) -> None:
        self._template_path = template_path
        self._output_path = output_path
        self._renderer = renderer
        self._reloader = reloader

    @classmethod
    def from_config(cls, config: Config) -> "ConfigApplier":
        return cls(
            template_path=config.template_file,
            output_path=config.config_file,
            renderer=JinjaRenderer(),
            reloader=CommandReloader(config.reload_script, timeout=config.reload_timeout),
        )

    def _load_template(self) -> str:
        try:
            with open(self._template_path, "r", encoding="utf-8") as fh:
                return fh.read()
        except (OSError, UnicodeDecodeError) as e:
            raise RenderError(f"Failed to load template file: {e}") from e

    @staticmethod
    def _target_mode(path: str) -> int:
        """Mode of the existing file, or the umask default for a new one."""
        try:
            return stat.S_IMODE(os.stat(path).st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask

    def _write(self, data: bytes) -> None:
        """
        Replace the output file in one rename so readers never see a partial
        file. The file keeps its permissions; a symlinked path keeps the link
        and replaces its target.
        """
        target = os.path.realpath(self._output_path)
        directory = os.path.dirname(target)
        tmp_path = None
        try:
            mode = self._target_mode(target)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(target)}.")
            with os.fdopen(fd, "wb") as fh:
                os.fchmod(fh.fileno(), mode)
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as e:
            raise WriteError(f"Failed to write config file {self._output_path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def _log_records(self, records: Sequence[ExposureRecord]) -> None:
        for n, r in enumerate(records):
            logger.info(f"-+= Service #{n}")
            logger.info(f" |--= Name : {r.name}")
            logger.info(f" |--= Endpoints : {list(r.backends)}")
            logger.info(f" |--= BackendPort : {r.target_port}")
            logger.info(f" |--= FrontendPort : {r.exposed_port}")
            logger.info(f" `--= LoadBalancerIP : {r.load_balancer_address}")

    def apply(self, records: Sequence[ExposureRecord]) -> ReloadResult:
        """
        Render, write and reload.

        Raises RenderError or WriteError when the output file was left
        untouched; reload failures are reported in the returned result.
        """
        self._log_records(records)

        text = self._load_template()
        data = self._renderer.render(records, text)

        self._write(data)
        logger.info(f"Write config file: {self._output_path} ({len(records)} services)")

        logger.info("Ready to reload proxy")
        output, code = self._reloader.run()
        if code == 0:
            logger.info(f"✅ Reload script succeed:\n{output}")
            return ReloadResult(ok=True, exit_code=code, output=output)

        logger.error(f"Error reloading proxy (exit={code}):\n{output}")
        return ReloadResult(ok=False, exit_code=code, output=output)
