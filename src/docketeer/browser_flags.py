from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from docketeer.errors import ConfigurationError


REMOTE_DEBUGGING_PORT_OPTION = "--remote-debugging-port"
REMOTE_DEBUGGING_ADDRESS_FLAG = "--remote-debugging-address=0.0.0.0"
# Points at a host path that does not exist inside the container.
USER_DATA_DIR_OPTION = "--user-data-dir"
MAX_PORT = 65535


@dataclass(frozen=True)
class BrowserFlags:
    port: int | None
    forwarded_flags: tuple[str, ...]


def _flag_matches_option(flag: str, *, long_option: str) -> bool:
    return flag == long_option or flag.startswith(f"{long_option}=")


def _parse_remote_debugging_port(raw_value: str) -> int:
    value = raw_value.strip()
    if not (value.isascii() and value.isdigit()):
        raise ConfigurationError(
            f"Invalid {REMOTE_DEBUGGING_PORT_OPTION}={raw_value!r} (expected a port number between 1 and {MAX_PORT})"
        )
    port = int(value, 10)
    if port == 0:
        raise ConfigurationError(
            f"{REMOTE_DEBUGGING_PORT_OPTION}=0 is unsupported. "
            "Please pass an actual port or use --remote-debugging-pipe."
        )
    if port > MAX_PORT:
        raise ConfigurationError(
            f"Invalid {REMOTE_DEBUGGING_PORT_OPTION}={raw_value!r} (expected a port number between 1 and {MAX_PORT})"
        )
    return port


def translate_browser_flags(flags: Iterable[str]) -> BrowserFlags:
    """Split the automation tool's browser flags into a port binding and forwarded flags.

    Only ``--remote-debugging-port=`` and ``--user-data-dir`` are inspected;
    every other flag is forwarded untouched in its original order. A bare
    ``--user-data-dir`` also drops the path that follows it as a separate token.

    Raises:
        ConfigurationError: If the debugging port is ``0`` or not a valid port.
    """
    parsed_flags = [str(flag) for flag in flags]
    port: int | None = None
    prefix = f"{REMOTE_DEBUGGING_PORT_OPTION}="
    for flag in parsed_flags:
        if flag.startswith(prefix):
            port = _parse_remote_debugging_port(flag[len(prefix) :])
            break

    forwarded: list[str] = []
    index = 0
    while index < len(parsed_flags):
        flag = parsed_flags[index]
        index += 1
        if not _flag_matches_option(flag, long_option=USER_DATA_DIR_OPTION):
            forwarded.append(flag)
            continue
        # The bare form takes the next token as its value unless that token is another flag.
        if flag == USER_DATA_DIR_OPTION and index < len(parsed_flags) and not parsed_flags[index].startswith("-"):
            index += 1
    return BrowserFlags(port=port, forwarded_flags=tuple(forwarded))
