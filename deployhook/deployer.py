"""
Deployment trigger. Runs the configured command as a detached asyncio task.

The webhook handler calls trigger() and replies immediately; the outcome of
the deployment is only ever logged. Each call spawns its own shell process:
no queue, no retries, no mutual exclusion between concurrent deployments.

The shell runs in its own session so a timeout or shutdown can kill the
whole process group (yarn, node, ...) and not just /bin/sh.
"""

import asyncio
import os
import shlex
import signal
import time
from dataclasses import dataclass

import structlog

from deployhook.config import Config


logger = structlog.get_logger(__name__)

DEPLOY_TIMEOUT_SECONDS = 300
REAP_TIMEOUT_SECONDS = 5


class DeploymentError(Exception):
    """A deployment ran but did not succeed (timeout, non-zero exit)."""


@dataclass
class DeployResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    returncode: int | None = None
    duration: float = 0.0


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _text(buf: bytearray) -> str:
    return buf.decode(errors="replace")


async def _pump(stream: asyncio.StreamReader, buf: bytearray) -> None:
    """Copy a pipe into buf as it arrives, so a kill keeps what was read."""
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        buf.extend(chunk)


async def _finish(pumps: list[asyncio.Future]) -> None:
    # A grandchild that left the process group can hold a pipe open
    if not pumps:
        return
    _, pending = await asyncio.wait(pumps, timeout=REAP_TIMEOUT_SECONDS)
    for pump in pending:
        pump.cancel()


async def _reap(proc: asyncio.subprocess.Process,
                pumps: list[asyncio.Future]) -> None:
    """Kill the process group, wait for the shell to exit, collect output."""
    if proc.returncode is None:
        _kill_group(proc)
    try:
        await asyncio.wait_for(proc.wait(), REAP_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("deploy_not_reaped", pid=proc.pid)
    await _finish(pumps)


class Deployer:
    """Spawns deployment processes for one Config."""

    def __init__(self, config: Config, timeout: float = DEPLOY_TIMEOUT_SECONDS):
        self.config = config
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def command(self) -> str:
        return f"cd {shlex.quote(self.config.project_path)} && {self.config.deploy_command}"

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def trigger(self) -> asyncio.Task:
        """Start a deployment in the background. Must be called on the event loop."""
        if self._tasks:
            logger.warning("deploy_overlapping", in_flight=len(self._tasks))
        task = asyncio.create_task(self.run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self) -> DeployResult:
        """Run the deploy command once and log the outcome. Never raises
        except on cancellation."""
        logger.info("deploy_started", command=self.command)
        started = time.monotonic()
        out, err = bytearray(), bytearray()
        pumps: list[asyncio.Future] = []
        proc = None

        try:
            proc = await asyncio.create_subprocess_shell(
                self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
            pumps = [asyncio.ensure_future(_pump(proc.stdout, out)),
                     asyncio.ensure_future(_pump(proc.stderr, err))]
            try:
                await asyncio.wait_for(proc.wait(), self.timeout)
            except asyncio.TimeoutError:
                await _reap(proc, pumps)
                raise DeploymentError(f"deploy timed out after {self.timeout}s")

            await _finish(pumps)
            if proc.returncode != 0:
                raise DeploymentError(
                    f"deploy command exited with status {proc.returncode}")
        except asyncio.CancelledError:
            if proc is not None:
                await _reap(proc, pumps)
            logger.error("deploy_cancelled", command=self.command,
                         returncode=proc.returncode if proc else None,
                         stderr=_text(err))
            raise
        except (DeploymentError, OSError) as e:
            returncode = proc.returncode if proc else None
            result = DeployResult(
                success=False, stdout=_text(out), stderr=_text(err),
                error=str(e), returncode=returncode,
                duration=time.monotonic() - started)
            logger.error("deploy_failed", error=result.error,
                         returncode=returncode, stderr=result.stderr,
                         duration=round(result.duration, 2))
            return result

        result = DeployResult(
            success=True, stdout=_text(out), stderr=_text(err),
            returncode=proc.returncode, duration=time.monotonic() - started)
        if self.config.verbose_logging:
            logger.info("deploy_stdout", stdout=result.stdout)
            if result.stderr:
                logger.warning("deploy_stderr", stderr=result.stderr)
        logger.info("deploy_succeeded", duration=round(result.duration, 2))
        return result

    async def drain(self, grace: float) -> None:
        """Wait up to `grace` seconds for running deployments, then cancel them."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("deploy_drain", in_flight=len(pending), grace=grace)
        _, still_running = await asyncio.wait(pending, timeout=grace)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
