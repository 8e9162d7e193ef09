"""ContainerRunner — spawns one agent container per invocation and supervises it.

Supervision rules:

* stdout is decoded incrementally; passthrough text goes to ``on_fragment``
  and every complete frame becomes the last known good output and goes to
  ``on_output``. Both callbacks are awaited in arrival order.
* An idle timer restarts on every stdout chunk. A hard timer runs from
  spawn and is never restarted. Whichever fires first terminates the
  container (SIGTERM, then SIGKILL after a grace window).
* The run resolves exactly once. A result captured before a timeout wins
  over the timeout; without one the run is an error.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from courier.execution.container_runtime import ContainerRuntime, runtime_from_name
from courier.execution.mount_builder import DefaultMountFactory, MountFactory
from courier.execution.mount_security import MountValidationError
from courier.execution.output_parser import (
    ContainerOutput,
    ContainerOutputParser,
    OutputCapture,
    OutputFragment,
    OutputFrame,
)
from courier.execution.resolution import ResolutionCell
from courier.groups.paths import GroupPaths
from courier.groups.types import RegisteredGroup
from courier.infrastructure.clock import now_iso
from courier.infrastructure.config import (
    CONTAINER_IMAGE,
    CONTAINER_KILL_GRACE,
    CONTAINER_MAX_OUTPUT_SIZE,
    CONTAINER_RUNTIME,
    SECRET_KEYS,
    TimeoutConfig,
    read_env_file,
)
from courier.infrastructure.idle_timer import IdleTimer
from courier.infrastructure.logger import is_debug_enabled, logger

READ_CHUNK_SIZE = 8192


@dataclass(frozen=True)
class ContainerInput:
    prompt: str
    session_id: str | None
    group_folder: str
    chat_jid: str
    is_main: bool
    is_scheduled_task: bool = False


OnProcess = Callable[[asyncio.subprocess.Process, str], None]
OnFragment = Callable[[str], Awaitable[None]]
OnOutput = Callable[[ContainerOutput], Awaitable[None]]
SpawnFn = Callable[..., Awaitable[asyncio.subprocess.Process]]


class ContainerRunner:
    """Runs agent containers and streams their output."""

    def __init__(
        self,
        runtime: ContainerRuntime | None = None,
        mount_factory: MountFactory | None = None,
        timeout_config: TimeoutConfig | None = None,
        image: str = CONTAINER_IMAGE,
        max_output_size: int = CONTAINER_MAX_OUTPUT_SIZE,
        kill_grace_s: float = CONTAINER_KILL_GRACE,
        spawn: SpawnFn | None = None,
    ) -> None:
        self._runtime = runtime or runtime_from_name(CONTAINER_RUNTIME)
        self._mount_factory = mount_factory or DefaultMountFactory()
        self._timeout = timeout_config or TimeoutConfig()
        self._image = image
        self._max_output_size = max_output_size
        self._kill_grace_s = kill_grace_s
        self._spawn = spawn or asyncio.create_subprocess_exec

    async def run(
        self,
        group: RegisteredGroup,
        input_data: ContainerInput,
        on_process: OnProcess | None = None,
        on_fragment: OnFragment | None = None,
        on_output: OnOutput | None = None,
    ) -> ContainerOutput:
        """Run a container to completion. Never raises; failures come back as error outputs."""
        container_name = f"courier-{_safe_name(group.folder)}-{int(time.time() * 1000)}"
        try:
            return await self._run(group, input_data, container_name, on_process, on_fragment, on_output)
        except Exception as err:
            logger.exception("Container run failed", name=container_name, group=group.name)
            return ContainerOutput(status="error", error=f"Container run failed: {err}")

    async def _run(
        self,
        group: RegisteredGroup,
        input_data: ContainerInput,
        container_name: str,
        on_process: OnProcess | None,
        on_fragment: OnFragment | None,
        on_output: OnOutput | None,
    ) -> ContainerOutput:
        try:
            mount_args = self._mount_factory.build_mounts(group, input_data.is_main)
        except MountValidationError as err:
            logger.error("Mount validation failed, container not started", group=group.name, error=str(err))
            return ContainerOutput(status="error", error=f"Mount validation failed: {err}")

        timeout = self._timeout.for_group(group)
        secrets = read_env_file(SECRET_KEYS)
        container_args = self._build_args(group, input_data, container_name, mount_args)

        logger.info(
            "Starting container",
            name=container_name,
            group=group.name,
            image=self._image,
            mounts=len(mount_args) // 2,
            is_main=input_data.is_main,
        )

        started = time.monotonic()
        try:
            proc = await self._spawn(
                self._runtime.bin, *container_args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            logger.error("Failed to spawn container", name=container_name, error=str(err))
            return ContainerOutput(status="error", error=f"Failed to spawn container: {err}")

        supervisor = _Supervisor(
            proc,
            container_name=container_name,
            group_name=group.name,
            timeout=timeout,
            max_output_size=self._max_output_size,
            kill_grace_s=self._kill_grace_s,
            on_fragment=on_fragment,
            on_output=on_output,
        )

        try:
            if on_process:
                on_process(proc, container_name)
            output = await supervisor.supervise(_input_payload(input_data, secrets))
        finally:
            await supervisor.ensure_stopped()

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Container finished",
            name=container_name,
            status=output.status,
            duration_ms=duration_ms,
            exit_code=proc.returncode,
            timed_out=supervisor.timed_out,
        )
        self._write_run_log(group, input_data, container_name, output, duration_ms, proc.returncode, supervisor)
        return output

    def _build_args(
        self,
        group: RegisteredGroup,
        input_data: ContainerInput,
        container_name: str,
        mount_args: list[str],
    ) -> list[str]:
        env_args = [
            "-e", f"COURIER_GROUP_FOLDER={group.folder}",
            "-e", f"COURIER_IS_MAIN={'1' if input_data.is_main else '0'}",
            "-e", f"COURIER_CHAT_JID={input_data.chat_jid}",
        ]
        return [
            "run", "-i", "--rm",
            "--name", container_name,
            *mount_args,
            *env_args,
            self._image,
        ]

    def _write_run_log(
        self,
        group: RegisteredGroup,
        input_data: ContainerInput,
        container_name: str,
        output: ContainerOutput,
        duration_ms: int,
        exit_code: int | None,
        supervisor: _Supervisor,
    ) -> None:
        logs_dir = GroupPaths.logs_dir(group.folder)
        timestamp = now_iso().replace(":", "-")
        lines = [
            "=== Container Run Log ===",
            f"Timestamp: {now_iso()}",
            f"Container: {container_name}",
            f"Group: {group.name}",
            f"IsMain: {input_data.is_main}",
            f"ScheduledTask: {input_data.is_scheduled_task}",
            f"Duration: {duration_ms}ms",
            f"Exit Code: {exit_code}",
            f"Timed Out: {supervisor.timed_out or 'no'}",
            f"Status: {output.status}",
        ]
        if output.error:
            lines.append(f"Error: {output.error}")
        if output.status == "error" or is_debug_enabled():
            lines += [
                "",
                "=== Input ===",
                json.dumps({k: v for k, v in asdict(input_data).items() if k != "prompt"}),
                f"Prompt length: {len(input_data.prompt)} chars",
                "",
                f"=== Stdout{' (TRUNCATED)' if supervisor.stdout.truncated else ''} ===",
                supervisor.stdout.text,
                "",
                f"=== Stderr{' (TRUNCATED)' if supervisor.stderr.truncated else ''} ===",
                supervisor.stderr.text,
            ]
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
            (logs_dir / f"container-{timestamp}.log").write_text("\n".join(lines) + "\n")
        except OSError as err:
            logger.warning("Failed to write container log", group=group.name, error=str(err))


class _Supervisor:
    """Owns one spawned process until the run is resolved."""

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        container_name: str,
        group_name: str,
        timeout: TimeoutConfig,
        max_output_size: int,
        kill_grace_s: float,
        on_fragment: OnFragment | None,
        on_output: OnOutput | None,
    ) -> None:
        self._proc = proc
        self._name = container_name
        self._group_name = group_name
        self._timeout = timeout
        self._kill_grace_s = kill_grace_s
        self._on_fragment = on_fragment
        self._on_output = on_output

        self._parser = ContainerOutputParser(max_frame_size=max_output_size)
        self.stdout = OutputCapture(max_output_size)
        self.stderr = OutputCapture(max_output_size)
        self.last_output: ContainerOutput | None = None
        self.timed_out: str | None = None  # "idle" | "hard"

        self._resolution: ResolutionCell[ContainerOutput] = ResolutionCell()
        self._idle = IdleTimer(lambda: self._on_timeout("idle"), timeout.idle_timeout / 1000)
        self._hard_handle: asyncio.TimerHandle | None = None
        self._stop_task: asyncio.Task[None] | None = None
        self._exit_task: asyncio.Task[None] | None = None
        self._input_task: asyncio.Task[None] | None = None

    async def write_input(self, payload: dict[str, Any]) -> None:
        stdin = self._proc.stdin
        assert stdin is not None
        try:
            stdin.write(json.dumps(payload).encode())
            await stdin.drain()
        except ConnectionError as err:
            logger.warning("Container closed stdin early", name=self._name, error=str(err))
        finally:
            stdin.close()

    async def supervise(self, payload: dict[str, Any]) -> ContainerOutput:
        """Arm both timers, then feed stdin. A child that never reads stdin still times out."""
        loop = asyncio.get_running_loop()
        self._idle.reset()
        self._hard_handle = loop.call_later(self._timeout.get_hard_timeout() / 1000, self._on_timeout, "hard")
        self._exit_task = asyncio.create_task(self._watch_exit())
        self._input_task = asyncio.create_task(self.write_input(payload))
        try:
            return await self._resolution.wait()
        finally:
            self._idle.clear()
            self._hard_handle.cancel()

    async def ensure_stopped(self) -> None:
        """Leave no process behind once the run is over."""
        self._idle.clear()
        if self._hard_handle:
            self._hard_handle.cancel()
        if self._stop_task and not self._stop_task.done():
            self._stop_task.cancel()
        if self._proc.returncode is None:
            logger.warning("Killing container still running after resolution", name=self._name)
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
            else:
                await self._wait_exit(self._kill_grace_s)
        pending = [t for t in (self._input_task, self._exit_task) if t and not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    # --- Streams ---

    async def _watch_exit(self) -> None:
        try:
            await asyncio.gather(self._read_stdout(), self._read_stderr())
            code = await self._proc.wait()
        except asyncio.CancelledError:
            raise
        except Exception as err:
            logger.exception("Error reading container output", name=self._name)
            self._resolution.resolve(ContainerOutput(status="error", error=f"Container I/O failed: {err}"), "io")
            return
        if self._resolution.resolve(self._classify(code), "exit"):
            logger.debug("Container resolved on exit", name=self._name, exit_code=code)

    async def _read_stdout(self) -> None:
        stream = self._proc.stdout
        assert stream is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            await self._handle_stdout(decoder.decode(chunk))
        tail = decoder.decode(b"", final=True)
        if tail:
            await self._handle_stdout(tail)
        if self._parser.in_frame:
            logger.warning("Discarding unterminated output frame", name=self._name)
        await self._dispatch(self._parser.flush())

    async def _read_stderr(self) -> None:
        stream = self._proc.stderr
        assert stream is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            for line in text.splitlines():
                if line.strip():
                    logger.debug(line, container=self._group_name)
            if self.stderr.append(text):
                logger.warning("Container stderr truncated", group=self._group_name, size=len(self.stderr.text))

    async def _handle_stdout(self, text: str) -> None:
        if self.stdout.append(text):
            logger.warning("Container stdout truncated", group=self._group_name, size=len(self.stdout.text))
        if not self.timed_out:
            self._idle.reset()
        await self._dispatch(self._parser.feed(text))

    async def _dispatch(self, events: list[OutputFragment | OutputFrame]) -> None:
        for event in events:
            if isinstance(event, OutputFragment):
                if self._on_fragment:
                    await self._call(self._on_fragment, event.text)
            elif event.output is None:
                logger.warning("Ignoring malformed output frame", name=self._name, raw=event.raw[:200])
            else:
                self.last_output = event.output
                if self._on_output:
                    await self._call(self._on_output, event.output)

    async def _call(self, callback: Callable[[Any], Awaitable[None]], arg: Any) -> None:
        try:
            await callback(arg)
        except Exception:
            logger.exception("Output callback failed", name=self._name)

    # --- Timeouts ---

    def _on_timeout(self, kind: str) -> None:
        if self.timed_out or self._resolution.resolved:
            return
        self.timed_out = kind
        limit = self._timeout.idle_timeout if kind == "idle" else self._timeout.get_hard_timeout()
        logger.error(
            "Container timeout, stopping",
            name=self._name,
            group=self._group_name,
            kind=kind,
            timeout_ms=limit,
            has_output=self.last_output is not None,
        )
        if kind == "hard":
            self._idle.clear()
        self._stop_task = asyncio.create_task(self._stop())

    async def _stop(self) -> None:
        for signal_name in ("terminate", "kill"):
            if self._proc.returncode is None:
                try:
                    getattr(self._proc, signal_name)()
                except ProcessLookupError:
                    pass
                if not await self._wait_exit(self._kill_grace_s):
                    logger.warning("Container did not exit after signal", name=self._name, signal=signal_name)
                    continue
            await self._settle_after_exit()
            return

        # The exit event never came; decide now rather than hang.
        self._resolution.resolve(self._classify(None), "timeout")

    async def _settle_after_exit(self) -> None:
        """The process is gone; give the stream readers a bounded window to reach EOF."""
        if self._exit_task and not self._exit_task.done():
            await asyncio.wait({self._exit_task}, timeout=self._kill_grace_s)
        if self._resolution.resolve(self._classify(self._proc.returncode), "exit"):
            logger.warning("Container exited but its output streams stayed open", name=self._name)

    async def _wait_exit(self, timeout_s: float) -> bool:
        try:
            await asyncio.wait_for(asyncio.shield(self._proc.wait()), timeout_s)
            return True
        except asyncio.TimeoutError:
            return False

    # --- Outcome ---

    def _classify(self, exit_code: int | None) -> ContainerOutput:
        if self.last_output is not None:
            if self.timed_out:
                logger.info("Container timed out after producing output", name=self._name, kind=self.timed_out)
            return self.last_output

        if self.timed_out:
            limit = self._timeout.idle_timeout if self.timed_out == "idle" else self._timeout.get_hard_timeout()
            return ContainerOutput(
                status="error",
                error=f"Container timed out after {limit}ms ({self.timed_out} timeout) without producing output",
            )

        if exit_code == 0:
            return ContainerOutput(status="error", error="Container exited without producing output")

        stderr_tail = self.stderr.tail(200).strip()
        detail = f": {stderr_tail}" if stderr_tail else ""
        return ContainerOutput(status="error", error=f"Container exited with code {exit_code}{detail}")


def _input_payload(input_data: ContainerInput, secrets: dict[str, str]) -> dict[str, Any]:
    return {
        "prompt": input_data.prompt,
        "sessionId": input_data.session_id,
        "groupFolder": input_data.group_folder,
        "chatJid": input_data.chat_jid,
        "isMain": input_data.is_main,
        "isScheduledTask": input_data.is_scheduled_task,
        "secrets": secrets,
    }


def _safe_name(folder: str) -> str:
    return re.sub(r"[^a-zA-Z0-9-]", "-", folder)
