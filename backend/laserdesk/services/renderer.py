import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Callable, List

from laserdesk import config
from laserdesk.errors import RendererFailed, RendererNotFound, RendererTimeout

logger = logging.getLogger(__name__)


class Renderer:
    """Opens a generated artifact in the external rendering program.

    `invoke` returns normally on success and raises RendererNotFound,
    RendererTimeout or RendererFailed otherwise.
    """

    def invoke(self, path: Path) -> None:
        raise NotImplementedError


class LightBurnRenderer(Renderer):
    """Launches LightBurn on an artifact.

    On Windows the launch goes through `start`, which returns as soon as the GUI
    is spawned, and is bounded by `timeout`. Elsewhere the executable is started
    in its own session and watched for `launch_grace` seconds: an early non-zero
    exit is a failure, still running means the file is open.
    """

    def __init__(self, executable: str = None, timeout: float = None, launch_grace: float = None):
        self.executable = executable or config.RENDERER_PATH
        self.timeout = timeout if timeout is not None else config.RENDERER_TIMEOUT_SECONDS
        self.launch_grace = launch_grace if launch_grace is not None else config.RENDERER_LAUNCH_GRACE_SECONDS

    def command(self, path: Path) -> List[str]:
        if os.name == "nt":
            return ["cmd.exe", "/C", "start", "", self.executable, str(path)]
        return [self.executable, str(path)]

    def invoke(self, path: Path) -> None:
        if os.path.isabs(self.executable) and not os.path.exists(self.executable):
            raise RendererNotFound(f"Renderer executable not found: {self.executable}")

        cmd = self.command(path)
        logger.debug("Launching renderer cmd=%s", cmd)
        if os.name == "nt":
            self._run_start(cmd, path)
        else:
            self._launch_detached(cmd, path)
        logger.info("Renderer launched for %s", path)

    def _run_start(self, cmd: List[str], path: Path) -> None:
        try:
            subprocess.run(cmd, timeout=self.timeout, check=True, capture_output=True)
        except FileNotFoundError as e:
            raise RendererNotFound(f"Renderer executable not found: {self.executable}") from e
        except subprocess.TimeoutExpired as e:
            raise RendererTimeout(f"Renderer did not return within {self.timeout}s for {path}") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode(errors="replace").strip()
            raise RendererFailed(f"Renderer exited with code {e.returncode}: {stderr}") from e
        except OSError as e:
            raise RendererFailed(f"Renderer could not be launched: {e}") from e

    def _launch_detached(self, cmd: List[str], path: Path) -> None:
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise RendererNotFound(f"Renderer executable not found: {self.executable}") from e
        except OSError as e:
            raise RendererFailed(f"Renderer could not be launched: {e}") from e

        try:
            returncode = proc.wait(timeout=self.launch_grace)
        except subprocess.TimeoutExpired:
            logger.debug("Renderer pid=%s still running after %.1fs for %s", proc.pid, self.launch_grace, path)
            return
        if returncode != 0:
            raise RendererFailed(f"Renderer exited with code {returncode} for {path}")


class RenderInvoker:
    """Calls a renderer with retries and exponential backoff.

    Timeouts and generic failures are retried up to `max_retries` times, waiting
    backoff, 2*backoff, 4*backoff... between attempts. A missing executable is not retried.
    """

    def __init__(
        self,
        renderer: Renderer,
        max_retries: int = None,
        backoff: float = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.renderer = renderer
        self.max_retries = config.RENDER_MAX_RETRIES if max_retries is None else max_retries
        self.backoff = config.RENDER_BACKOFF_SECONDS if backoff is None else backoff
        self.sleep = sleep

    def invoke(self, path: Path) -> None:
        for attempt in range(self.max_retries + 1):
            try:
                self.renderer.invoke(path)
                return
            except RendererNotFound:
                raise
            except (RendererTimeout, RendererFailed) as e:
                if attempt >= self.max_retries:
                    logger.error("Renderer failed after %s attempts for %s: %s", attempt + 1, path, e)
                    raise
                delay = self.backoff * (2 ** attempt)
                logger.warning("Renderer attempt %s failed for %s: %s; retrying in %.1fs", attempt + 1, path, e, delay)
                self.sleep(delay)
