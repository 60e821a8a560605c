"""
Subprocess helper that honours run cancellation.
"""

import subprocess
from typing import Dict, List, Optional, Tuple

from .context import RunContext
from .errors import RunCancelledError

POLL_SECONDS = 0.2


def run_command(
    ctx: RunContext,
    args: List[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Tuple[int, str, str]:
    """
    Runs a command to completion, killing it if the context is cancelled.

    Args:
        ctx: Run context
        args: Command and arguments
        cwd: Working directory
        env: Full environment for the child, or None to inherit
        timeout: Hard limit in seconds

    Returns:
        Tuple of (exit code, stdout, stderr)

    Raises:
        RunCancelledError: If the context is cancelled while the command runs
        subprocess.TimeoutExpired: If ``timeout`` elapses first
        OSError: If the command cannot be started
    """
    ctx.check()
    proc = subprocess.Popen(
        args,
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    waited = 0.0
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=POLL_SECONDS)
            return proc.returncode, stdout, stderr
        except subprocess.TimeoutExpired:
            waited += POLL_SECONDS
            if ctx.cancelled:
                proc.kill()
                proc.communicate()
                raise RunCancelledError(f"{args[0]} interrupted: {ctx.reason}")
            if timeout is not None and waited >= timeout:
                proc.kill()
                proc.communicate()
                raise subprocess.TimeoutExpired(args, timeout)
