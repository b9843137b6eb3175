"""Synchronous shell command execution.

Commands run through ``/bin/sh -c`` without any escaping; callers own the
safety of what they pass in. ``run``, ``run_capturing`` and ``run_to_file``
never raise and have no timeout. ``run_checked`` is the strict variant with a
timeout and distinct errors for each failure kind.

Example:
    >>> run_capturing("echo hello")
    'hello\\n'
"""

from __future__ import annotations

import codecs
import contextlib
import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .errors import CommandTimeoutError, NonZeroExitError, SpawnError

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and, when requested, the combined stdout/stderr text."""

    exit_status: int
    captured_output: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def _argv(command: str) -> List[str]:
    return [SHELL, "-c", command]


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def run(command: str) -> None:
    """Run ``command`` and block until it exits; output is discarded."""
    try:
        process = subprocess.Popen(
            _argv(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, ValueError) as exc:
        logger.debug("Could not start %r: %s", command, exc)
        return
    process.wait()


def capture(command: str) -> Optional[ProcessResult]:
    """Run ``command`` with stdout and stderr sharing one pipe.

    The pipe is drained in ``CHUNK_SIZE`` reads into one reusable buffer that is
    zeroed before every read, until end of stream, and only then is the child
    reaped. Returns None when the process could not be started.
    """
    try:
        process = subprocess.Popen(
            _argv(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except (OSError, ValueError) as exc:
        logger.debug("Could not start %r: %s", command, exc)
        return None

    buffer = bytearray(CHUNK_SIZE)
    view = memoryview(buffer)
    zeros = bytes(CHUNK_SIZE)
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pieces: List[str] = []
    with process.stdout:
        while True:
            buffer[:] = zeros
            count = process.stdout.readinto(view)
            if not count:
                break
            pieces.append(decoder.decode(bytes(view[:count])))
    pieces.append(decoder.decode(b"", final=True))
    view.release()
    exit_status = process.wait()
    return ProcessResult(exit_status=exit_status, captured_output="".join(pieces))


def run_capturing(command: str) -> str:
    """Return everything ``command`` wrote to stdout and stderr.

    A command that could not be started yields ``""``, the same as a command
    that printed nothing.
    """
    result = capture(command)
    if result is None:
        return ""
    return result.captured_output or ""


def run_to_file(command: str, path: Union[str, Path]) -> Optional[int]:
    """Send stdout and stderr of ``command`` to a freshly truncated ``path``.

    Returns the exit status, or None when the file or the process could not be
    opened/started.
    """
    try:
        handle = open(path, "wb")
    except OSError as exc:
        logger.debug("Could not open %s for %r: %s", path, command, exc)
        return None
    with handle:
        try:
            process = subprocess.Popen(
                _argv(command),
                stdin=subprocess.DEVNULL,
                stdout=handle,
                stderr=subprocess.STDOUT,
            )
        except (OSError, ValueError) as exc:
            logger.debug("Could not start %r: %s", command, exc)
            return None
        return process.wait()


def run_checked(command: str, *, timeout: Optional[float] = None) -> ProcessResult:
    """Run ``command`` and raise unless it exits with status 0 in time.

    Raises:
        SpawnError: the shell could not be started.
        CommandTimeoutError: ``timeout`` seconds elapsed; the process group is killed.
        NonZeroExitError: the command finished with a non-zero status.
    """
    try:
        process = subprocess.Popen(
            _argv(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
    except (OSError, ValueError) as exc:
        raise SpawnError(command, str(exc)) from exc

    try:
        output, _ = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        with contextlib.suppress(ProcessLookupError):
            os.killpg(process.pid, signal.SIGKILL)
        output, _ = process.communicate()
        raise CommandTimeoutError(command, timeout or 0.0, _decode(output or b"")) from exc

    text = _decode(output or b"")
    if process.returncode != 0:
        raise NonZeroExitError(command, process.returncode, text)
    return ProcessResult(exit_status=process.returncode, captured_output=text)
