from __future__ import annotations

import atexit
import os
import shutil
import signal
import subprocess
import sys
import threading
import time
import uuid
from typing import Any, Protocol

import click

from docketeer.browser_flags import REMOTE_DEBUGGING_ADDRESS_FLAG, BrowserFlags, translate_browser_flags
from docketeer.config import DEFAULT_STOP_TIMEOUT_SECONDS, LAUNCHER_COMMAND, LOG_LEVEL_ENV, LaunchSettings
from docketeer.logs import LOGGER, configure_logging


CONTAINER_NAME_PREFIX = "docketeer_"
WAIT_POLL_SECONDS = 0.1
TEARDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ChildProcess(Protocol):
    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    def wait(self, timeout: float | None = None) -> int: ...


def _container_name() -> str:
    return f"{CONTAINER_NAME_PREFIX}{uuid.uuid4().hex[:12]}"


def _docker_run_args(*, container_name: str, settings: LaunchSettings, browser_flags: BrowserFlags) -> list[str]:
    args = ["run", "--rm", "--init", f"--name={container_name}"]
    if browser_flags.port is not None:
        # The caller connects to a fixed port, so both sides must match.
        args.append(f"-p={browser_flags.port}:{browser_flags.port}")
    args.extend(settings.docker_run_args)
    args.extend([settings.image, settings.exec_path])
    args.extend(browser_flags.forwarded_flags)
    args.append(REMOTE_DEBUGGING_ADDRESS_FLAG)
    return args


def _docker_rm_force(container_name: str) -> bool:
    try:
        result = subprocess.run(
            ["docker", "rm", "-f", container_name],
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        LOGGER.warning("Unable to remove container %s: %s", container_name, exc)
        return False
    if result.returncode != 0:
        LOGGER.warning(
            "docker rm -f %s exited with code %s: %s",
            container_name,
            result.returncode,
            (result.stderr or "").strip(),
        )
        return False
    return True


def _spawn_docker(args: list[str]) -> subprocess.Popen:
    if shutil.which("docker") is None:
        raise click.ClickException("docker command not found in PATH")
    try:
        return subprocess.Popen(["docker", *args])
    except OSError as exc:
        raise click.ClickException(f"Unable to start docker: {exc}") from exc


def exit_status(returncode: int) -> int:
    if returncode < 0:
        return 128 - returncode
    return returncode


class LaunchSession:
    """Owns the ``docker run`` child for one launcher invocation.

    ``teardown`` is wired to normal exit, SIGINT and SIGTERM. Whichever
    fires first asks the child to terminate; every later call is a no-op.
    The guard is a lock that is acquired without blocking and never
    released, which stays atomic when a signal handler interrupts the
    main flow halfway through a teardown.

    Hooks are installed before ``docker run`` is spawned and the child is
    attached afterwards. A teardown that lands in between is replayed
    against the child by ``attach``.
    """

    def __init__(
        self,
        child: ChildProcess | None = None,
        *,
        container_name: str,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT_SECONDS,
    ) -> None:
        self.container_name = container_name
        self.received_signal: int | None = None
        self._child = child
        self._stop_timeout = stop_timeout
        self._teardown_guard = threading.Lock()
        self._terminate_guard = threading.Lock()
        self._torndown_at: float | None = None

    @property
    def torndown(self) -> bool:
        return self._teardown_guard.locked()

    def attach(self, child: ChildProcess) -> None:
        self._child = child
        if self.torndown:
            self._terminate_child()

    def _terminate_child(self) -> None:
        child = self._child
        if child is None or not self._terminate_guard.acquire(blocking=False):
            return
        try:
            child.terminate()
        except OSError as exc:
            LOGGER.debug("Container process for %s already gone: %s", self.container_name, exc)

    def teardown(self) -> None:
        if not self._teardown_guard.acquire(blocking=False):
            return
        self._torndown_at = time.monotonic()
        LOGGER.debug("Stopping container %s", self.container_name)
        self._terminate_child()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        del frame
        LOGGER.info("Received %s, stopping container %s", signal.Signals(signum).name, self.container_name)
        if self.received_signal is None:
            self.received_signal = signum
        self.teardown()

    def install_teardown_hooks(self) -> None:
        atexit.register(self.teardown)
        for signum in TEARDOWN_SIGNALS:
            signal.signal(signum, self._handle_signal)

    def _force_stop(self, child: ChildProcess) -> int:
        LOGGER.warning(
            "Container %s did not stop within %.1fs, forcing removal",
            self.container_name,
            self._stop_timeout,
        )
        try:
            child.kill()
        except OSError as exc:
            LOGGER.debug("Container process for %s already gone: %s", self.container_name, exc)
        _docker_rm_force(self.container_name)
        return child.wait()

    def wait(self) -> int:
        child = self._child
        if child is None:
            raise RuntimeError(f"No docker process attached for container {self.container_name}")
        while True:
            try:
                return child.wait(timeout=WAIT_POLL_SECONDS)
            except subprocess.TimeoutExpired:
                pass
            torndown_at = self._torndown_at
            if torndown_at is not None and time.monotonic() - torndown_at >= self._stop_timeout:
                return self._force_stop(child)


def launch(browser_args: tuple[str, ...] | list[str], settings: LaunchSettings) -> int:
    browser_flags = translate_browser_flags(browser_args)
    container_name = _container_name()
    args = _docker_run_args(container_name=container_name, settings=settings, browser_flags=browser_flags)
    LOGGER.debug("Launching container %s: docker %s", container_name, " ".join(args))

    session = LaunchSession(container_name=container_name, stop_timeout=settings.stop_timeout)
    session.install_teardown_hooks()
    if session.received_signal is not None:
        LOGGER.info("Stopped before container %s was started", container_name)
        return exit_status(-session.received_signal)
    session.attach(_spawn_docker(args))
    returncode = session.wait()
    LOGGER.debug("Container %s exited with code %s", container_name, returncode)
    return exit_status(returncode)


class BrowserArgsCommand(click.Command):
    """Command that hands its whole argument vector to the callback unparsed.

    The automation tool owns this vector, so nothing in it, ``--`` and
    ``--help`` included, may be interpreted as an option of ours.
    """

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        ctx.params["browser_args"] = tuple(args)
        return []


@click.command(
    cls=BrowserArgsCommand,
    help="Stand-in browser executable that runs the real browser inside a Docker container.",
    context_settings={"help_option_names": []},
)
def main(browser_args: tuple[str, ...]) -> None:
    configure_logging(os.environ.get(LOG_LEVEL_ENV, ""), program=LAUNCHER_COMMAND)
    settings = LaunchSettings.from_env()
    sys.exit(launch(browser_args, settings))


if __name__ == "__main__":
    main()
