from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from docketeer.errors import ConfigurationError
from docketeer.logs import DEFAULT_LOG_LEVEL
from docketeer.run_args import split_docker_run_args


IMAGE_ENV = "DOCKETEER_IMAGE"
EXEC_PATH_ENV = "DOCKETEER_EXEC_PATH"
DOCKER_RUN_ARGS_ENV = "DOCKETEER_DOCKER_RUN_ARGS"
ENABLED_ENV = "DOCKETEER_ENABLED"
LOG_LEVEL_ENV = "DOCKETEER_LOG_LEVEL"
STOP_TIMEOUT_ENV = "DOCKETEER_STOP_TIMEOUT"
BROWSER_EXECUTABLE_ENV = "PUPPETEER_EXECUTABLE_PATH"
FORCE_COLOR_ENV = "FORCE_COLOR"

DEFAULT_EXEC_PATH = "google-chrome"
DEFAULT_STOP_TIMEOUT_SECONDS = 10.0
LAUNCHER_COMMAND = "docketeer-launch"


def _env_value(env: Mapping[str, str], name: str) -> str:
    return str(env.get(name, "") or "").strip()


def _parse_stop_timeout(raw_value: str) -> float:
    if not raw_value:
        return DEFAULT_STOP_TIMEOUT_SECONDS
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {STOP_TIMEOUT_ENV}: {raw_value!r} (expected seconds)") from exc
    if timeout < 0:
        raise ConfigurationError(f"Invalid {STOP_TIMEOUT_ENV}: {raw_value!r} (must not be negative)")
    return timeout


@dataclass(frozen=True)
class LaunchSettings:
    image: str
    exec_path: str = DEFAULT_EXEC_PATH
    docker_run_args: tuple[str, ...] = ()
    stop_timeout: float = DEFAULT_STOP_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> LaunchSettings:
        """Assemble launcher settings from the environment the driver prepared.

        The image is required here; only the executable path has a fallback.
        """
        source = os.environ if env is None else env
        image = _env_value(source, IMAGE_ENV)
        if not image:
            raise ConfigurationError(f"{IMAGE_ENV} must be set to the container image to launch")
        return cls(
            image=image,
            exec_path=_env_value(source, EXEC_PATH_ENV) or DEFAULT_EXEC_PATH,
            docker_run_args=tuple(split_docker_run_args(source.get(DOCKER_RUN_ARGS_ENV), DOCKER_RUN_ARGS_ENV)),
            stop_timeout=_parse_stop_timeout(_env_value(source, STOP_TIMEOUT_ENV)),
        )


@dataclass(frozen=True)
class DriverSettings:
    image: str
    command: tuple[str, ...]
    exec_path: str = DEFAULT_EXEC_PATH
    docker_run_args: str | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    def target_env(self, base_env: Mapping[str, str], launcher_path: str) -> dict[str, str]:
        env = dict(base_env)
        # Output is piped, so coloring has to be forced on.
        env[FORCE_COLOR_ENV] = "true"
        env[BROWSER_EXECUTABLE_ENV] = launcher_path
        env[IMAGE_ENV] = self.image
        env[EXEC_PATH_ENV] = self.exec_path
        env[ENABLED_ENV] = "true"
        env[LOG_LEVEL_ENV] = self.log_level
        if self.docker_run_args is not None:
            env[DOCKER_RUN_ARGS_ENV] = self.docker_run_args
        return env
