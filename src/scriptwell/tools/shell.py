"""Shell tool: run a command in the workspace with a hard timeout."""

import asyncio
import contextlib
import logging
import os
import signal
from dataclasses import dataclass

from scriptwell.classify.errors import classify_output, has_failure
from scriptwell.foundation.errors import ErrorKind, ExecutionCancelledError
from scriptwell.script.model import ToolErrorInfo, ToolResult
from scriptwell.tools.base import BaseTool, ProgressCallback, tool_metadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ShellParams:
    command: str
    cwd: str = "."
    timeout: float | None = None


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the process group (the shell and anything it spawned)."""
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    await proc.wait()


@tool_metadata(
    name="shell",
    simple_description="Run a shell command in the workspace",
    mutates=True,
    usage_guidance=(
        "Use shell for builds, tests and inspection. Commands that never exit "
        "(servers, watchers) are killed at the timeout."
    ),
)
class ShellTool(BaseTool):
    """Run a command with ``sh -c`` semantics and return its exit code and output."""

    parameters = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The shell command to execute"},
            "cwd": {"type": "string", "description": "Working directory relative to workspace (default: root)"},
            "timeout": {"type": "number", "description": "Timeout in seconds (capped by configuration)"},
        },
        "required": ["command"],
    }
    params_type = ShellParams

    def targets(self, params: ShellParams) -> tuple[str, ...]:
        # Anything under cwd may be touched
        return (params.cwd,)

    async def execute(
        self,
        params: ShellParams,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        self.check_cancelled(cancel)
        if not params.command.strip():
            raise ValueError("command must not be empty")
        cwd = self.resolve_path(params.cwd)
        if not cwd.is_dir():
            raise ValueError(f"Not a directory: {params.cwd}")
        limit = self.ctx.config.shell_timeout
        timeout = min(params.timeout, limit) if params.timeout and params.timeout > 0 else limit

        if on_progress is not None:
            on_progress(f"$ {params.command}")
        logger.debug("Running shell command", extra={"command": params.command, "cwd": str(cwd), "timeout": timeout})

        proc = await asyncio.create_subprocess_shell(
            params.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=str(cwd),
            start_new_session=os.name == "posix",
        )
        communicate = asyncio.ensure_future(proc.communicate())
        waiters: set[asyncio.Future] = {communicate}
        cancel_wait = None
        if cancel is not None:
            cancel_wait = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            await _kill(proc)
            communicate.cancel()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if communicate not in done:
            await _kill(proc)
            communicate.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await communicate
            if cancel is not None and cancel.is_set():
                raise ExecutionCancelledError()
            logger.warning("Shell command timed out", extra={"command": params.command, "timeout": timeout})
            return ToolResult.failure(
                f"Command timed out after {timeout:g}s and was killed: {params.command}",
                ErrorKind.TIMEOUT,
                "Avoid long-running or interactive commands; run servers in the background or add a timeout.",
            )

        stdout, stderr = communicate.result()
        exit_code = proc.returncode or 0
        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")

        parts = [f"Exit code: {exit_code}"]
        if out:
            parts.append(f"stdout:\n{out}")
        if err:
            parts.append(f"stderr:\n{err}")
        content = self.truncate("\n".join(parts))

        if exit_code == 0 and not (err and has_failure(err)):
            return ToolResult(content=content, display_text=f"$ {params.command} (exit 0)")

        classification = classify_output(f"{out}\n{err}", params.command)
        if classification.suggested_fix:
            content = f"{content}\n\nHint ({classification.error_type.value}): {classification.suggested_fix}"
        if exit_code == 0:
            # Warnings on stderr with a clean exit are reported, not failed
            return ToolResult(content=content, display_text=f"$ {params.command} (exit 0, stderr)")
        return ToolResult(
            content=content,
            display_text=f"$ {params.command} (exit {exit_code})",
            error=ToolErrorInfo(
                message=f"Command exited with code {exit_code}",
                kind=ErrorKind.TOOL_EXECUTION,
                suggested_fix=classification.suggested_fix,
            ),
        )
