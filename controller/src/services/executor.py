"""
Step executor - runs a single pipeline step as a local process.
"""

import logging
import os
import signal
import subprocess
import threading
import time
from collections import deque
from datetime import datetime, timezone
from textwrap import shorten
from typing import Callable, Dict, List, Mapping, Optional

from controller.src.models import StepResult, StepSpec, StepStatus

logger = logging.getLogger(__name__)

# Called with ("stdout" | "stderr", line) for every line a step prints
OutputCallback = Callable[[str, str], None]

EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126

def build_step_env(
    run_id: str,
    step_index: int,
    step_name: str,
    env_vars: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Environment for a step: the parent env, run metadata, then the step's own env."""
    env = dict(os.environ)
    env["PUSHDEPLOY_RUN_ID"] = run_id
    env["PUSHDEPLOY_STEP_INDEX"] = str(step_index)
    env["PUSHDEPLOY_STEP_NAME"] = step_name

    if env_vars:
        env.update(env_vars)

    return env

def _start_reader(stream, sink: deque, name: str, echo: Optional[OutputCallback]) -> threading.Thread:
    def _reader():
        try:
            for line in stream:
                sink.append(line)
                if echo is not None:
                    echo(name, line)
        finally:
            stream.close()

    thread = threading.Thread(target=_reader, daemon=True)
    thread.start()
    return thread

def _kill(proc: subprocess.Popen):
    # Steps run in their own session so a shell's children die with it
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except PermissionError:
            pass
    proc.kill()

def execute_step(
    step_index: int,
    step: StepSpec,
    args: List[str],
    workdir: str,
    timeout: Optional[float],
    env: Optional[Mapping[str, str]] = None,
    echo: Optional[OutputCallback] = None,
    tail_lines: Optional[int] = None,
) -> StepResult:
    """
    Execute a single pipeline step and wait for it to finish.

    The result reports SUCCEEDED, FAILED (non-zero exit) or TIMED_OUT.
    Whether a failure halts the pipeline is the engine's decision.
    """
    command = [step.tool] + list(args)
    logger.info(f"Executing step {step_index} ({step.name}): {' '.join(command)}")

    started_at = datetime.now(timezone.utc)
    start_time = time.monotonic()

    def _result(status: StepStatus, exit_code: Optional[int], stdout: str, stderr: str) -> StepResult:
        return StepResult(
            step_index=step_index,
            name=step.name,
            tool=step.tool,
            args=tuple(args),
            status=status,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration=time.monotonic() - start_time,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            allow_failure=step.allow_failure,
        )

    try:
        proc = subprocess.Popen(  # noqa: S603
            command,
            cwd=workdir,
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            bufsize=1,
            start_new_session=(os.name == "posix"),
        )
    except FileNotFoundError:
        logger.error(f"Step {step_index} ({step.name}): command not found: {step.tool}")
        return _result(StepStatus.FAILED, EXIT_NOT_FOUND, "", f"command not found: {step.tool}\n")
    except PermissionError:
        logger.error(f"Step {step_index} ({step.name}): permission denied: {step.tool}")
        return _result(StepStatus.FAILED, EXIT_NOT_EXECUTABLE, "", f"permission denied: {step.tool}\n")

    out_lines: deque = deque(maxlen=tail_lines)
    err_lines: deque = deque(maxlen=tail_lines)
    readers = [
        _start_reader(proc.stdout, out_lines, "stdout", echo),
        _start_reader(proc.stderr, err_lines, "stderr", echo),
    ]

    timed_out = False
    try:
        exit_code = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.error(f"Step {step_index} ({step.name}) timed out after {timeout}s")
        _kill(proc)
        exit_code = proc.wait()
    except KeyboardInterrupt:
        _kill(proc)
        proc.wait()
        raise
    else:
        # Background children die with the step and release its output pipes
        _kill(proc)

    for reader in readers:
        reader.join(timeout=5.0)

    stdout = "".join(out_lines)
    stderr = "".join(err_lines)
    if stdout:
        logger.debug(f"Step {step_index} stdout: {shorten(stdout.strip(), width=2000)}")
    if stderr:
        logger.debug(f"Step {step_index} stderr: {shorten(stderr.strip(), width=2000)}")

    if timed_out:
        return _result(StepStatus.TIMED_OUT, exit_code, stdout, stderr)
    if exit_code != 0:
        return _result(StepStatus.FAILED, exit_code, stdout, stderr)
    return _result(StepStatus.SUCCEEDED, exit_code, stdout, stderr)
