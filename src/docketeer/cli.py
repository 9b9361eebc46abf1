from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Mapping

import click
from click.core import ParameterSource

from docketeer.config import (
    DEFAULT_EXEC_PATH,
    DOCKER_RUN_ARGS_ENV,
    EXEC_PATH_ENV,
    IMAGE_ENV,
    LAUNCHER_COMMAND,
    LOG_LEVEL_ENV,
    DriverSettings,
)
from docketeer.launch import exit_status
from docketeer.logs import DEFAULT_LOG_LEVEL, LOGGER, configure_logging, normalize_log_level
from docketeer.run_args import split_docker_run_args


def _split_command_args(command_args: Iterable[str], env: Mapping[str, str]) -> tuple[str, list[str]]:
    args = [str(arg) for arg in command_args]
    while args and args[0].startswith("--"):
        LOGGER.warning("Ignoring unrecognized docketeer option: %s", args[0])
        args.pop(0)

    image = str(env.get(IMAGE_ENV, "") or "").strip()
    if not image:
        if not args:
            raise click.UsageError(f"Missing container image (pass it as the first argument or set {IMAGE_ENV})")
        image, args = args[0], args[1:]

    if not args:
        raise click.UsageError("Missing command to run")
    return image, args


def _docker_run_args_label() -> str:
    source = click.get_current_context().get_parameter_source("docker_run_args")
    if source is ParameterSource.ENVIRONMENT:
        return DOCKER_RUN_ARGS_ENV
    return "--docker-run-args"


def _docker_pull(image: str) -> int:
    result = subprocess.run(["docker", "pull", image], check=False)
    return result.returncode


def _launcher_path() -> str:
    sibling = Path(sys.argv[0]).absolute().with_name(LAUNCHER_COMMAND)
    if sibling.is_file() and os.access(sibling, os.X_OK):
        return str(sibling)
    found = shutil.which(LAUNCHER_COMMAND)
    if found:
        return str(Path(found).absolute())
    raise click.ClickException(f"{LAUNCHER_COMMAND} command not found next to {sys.argv[0]} or in PATH")


def _run_target(command: list[str], env: dict[str, str]) -> int:
    try:
        process = subprocess.Popen(command, env=env)
    except OSError as exc:
        raise click.ClickException(f"Unable to run {command[0]}: {exc}") from exc

    while True:
        try:
            return process.wait()
        except KeyboardInterrupt:
            # The target shares our terminal and got the same interrupt; let it shut its browser down.
            LOGGER.info("Interrupted, waiting for %s to exit", command[0])


@click.command(
    help=(
        "Run COMMAND with its browser launched inside a Docker container. "
        f"IMAGE may be omitted when {IMAGE_ENV} is set."
    ),
    context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True},
)
@click.option(
    "--exec-path",
    envvar=EXEC_PATH_ENV,
    default=DEFAULT_EXEC_PATH,
    show_default=True,
    help="Browser executable launched inside the container",
)
@click.option(
    "--docker-run-args",
    envvar=DOCKER_RUN_ARGS_ENV,
    default=None,
    help="Extra docker run flags for the browser container, split like shell words",
)
@click.option(
    "--log-level",
    envvar=LOG_LEVEL_ENV,
    default=DEFAULT_LOG_LEVEL,
    show_default=True,
    help="debug, info, warning or error",
)
@click.argument("command_args", metavar="[IMAGE] COMMAND [ARGS]...", nargs=-1, type=click.UNPROCESSED)
def main(
    exec_path: str,
    docker_run_args: str | None,
    log_level: str,
    command_args: tuple[str, ...],
) -> None:
    configure_logging(log_level, program="docketeer")
    image, command = _split_command_args(command_args, os.environ)
    settings = DriverSettings(
        image=image,
        command=tuple(command),
        exec_path=str(exec_path or "").strip() or DEFAULT_EXEC_PATH,
        docker_run_args=docker_run_args,
        log_level=normalize_log_level(log_level),
    )
    # Fail on bad run args here rather than inside the browser launch.
    split_docker_run_args(settings.docker_run_args, _docker_run_args_label())

    if shutil.which("docker") is None:
        raise click.ClickException("docker command not found in PATH")

    # Pull up front so the download doesn't count against the automation tool's launch timeout.
    LOGGER.debug("Pulling image %s", settings.image)
    pull_status = _docker_pull(settings.image)
    if pull_status != 0:
        raise click.ClickException(f"docker pull exited with code {pull_status}")

    env = settings.target_env(os.environ, _launcher_path())
    LOGGER.debug("Running %s with image=%s exec_path=%s", settings.command[0], settings.image, settings.exec_path)
    sys.exit(exit_status(_run_target(list(settings.command), env)))


if __name__ == "__main__":
    main()
