"""Allowlisted execution of external probe commands.

The scanner only shells out where Python has no unprivileged way to do
the job: the system ``ping`` (ICMP echo needs raw sockets) and, on
macOS, ``route`` for the default gateway. Commands run with shell=False
and every failure is raised as SubprocessError.

Usage:
    from config.subprocess_runner import safe_run

    result = safe_run(['ping', '-c', '1', '-W', '1', '192.168.1.1'], timeout=3.0)
    alive = result.returncode == 0
"""

# nosec B404 - only allowlisted commands are executed
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from config.constants import ALLOWED_SUBPROCESS_COMMANDS
from config.exceptions import SubprocessError
from config.logging_config import get_logger, log_probe_command

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def command_name(cmd: List[str]) -> str:
    """Executable name without its directory, e.g. "/sbin/ping" -> "ping"."""
    return Path(cmd[0]).name


def safe_run(
    cmd: List[str], timeout: Optional[float] = None, check_allowed: bool = True, **kwargs
) -> subprocess.CompletedProcess:
    """Run an allowlisted command and capture its text output.

    A non-zero exit status is returned, not raised; for ping it just
    means the host did not answer.

    Raises:
        SubprocessError: Empty or disallowed command, missing executable,
            timeout, or any other OS-level failure to run it.
    """
    if not cmd:
        raise SubprocessError("Empty command", command=cmd)

    name = command_name(cmd)
    if check_allowed and name not in ALLOWED_SUBPROCESS_COMMANDS:
        raise SubprocessError(
            f"Command not in allowlist: {name}",
            command=cmd,
            details={"allowed": sorted(ALLOWED_SUBPROCESS_COMMANDS)},
        )

    timeout = timeout or DEFAULT_TIMEOUT_SECONDS
    kwargs.setdefault("capture_output", True)
    kwargs.setdefault("text", True)

    started = time.monotonic()
    try:
        result = subprocess.run(cmd, timeout=timeout, **kwargs)  # nosec B603
    except subprocess.TimeoutExpired as e:
        # The probe's own -W/-t should fire first; this is the backstop
        raise SubprocessError(
            f"{name} timed out after {timeout}s", command=cmd, details={"timeout": timeout}
        ) from e
    except FileNotFoundError as e:
        logger.error(f"{name} not found on PATH")
        raise SubprocessError(f"Command not found: {cmd[0]}", command=cmd) from e
    except OSError as e:
        logger.error(f"Could not run {name}: {e}")
        raise SubprocessError(f"Subprocess error: {e}", command=cmd) from e

    log_probe_command(logger, cmd, result.returncode, (time.monotonic() - started) * 1000)
    return result
