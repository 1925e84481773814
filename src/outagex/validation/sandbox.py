"""Ephemeral sandboxes for syntax-checking candidate fix code."""

from __future__ import annotations

import asyncio
import base64
import logging
import shlex
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel

from outagex.errors import SandboxError

logger = logging.getLogger(__name__)

# Base64 characters per write command; must stay below the kernel per-argument limit (128 KiB)
WRITE_CHUNK_CHARS = 64 * 1024


class CommandResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0


class SandboxRuntime(ABC):
    """
    Isolated execution environment owned by a single validation call.

    ``create`` returns an opaque handle; every ``run`` names the handle and
    carries its own timeout. Callers must ``destroy`` the handle on every
    exit path. Failures and timeouts raise SandboxError.
    """

    @abstractmethod
    async def create(self, timeout: float) -> str:
        ...

    @abstractmethod
    async def run(self, handle: str, command: str, timeout: float) -> CommandResult:
        ...

    @abstractmethod
    async def destroy(self, handle: str) -> None:
        ...

    async def write_file(self, handle: str, path: str, content: str, timeout: float) -> CommandResult:
        """
        Write content to path inside the sandbox using only ``run``.

        The content is base64-encoded and appended in chunks, then decoded,
        so no single command carries the whole payload.
        """
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        target = shlex.quote(path)
        staging = shlex.quote(f"{path}.b64")
        chunks = [encoded[i : i + WRITE_CHUNK_CHARS] for i in range(0, len(encoded), WRITE_CHUNK_CHARS)] or [""]
        for index, chunk in enumerate(chunks):
            redirect = ">" if index == 0 else ">>"
            result = await self.run(handle, f"printf %s {shlex.quote(chunk)} {redirect} {staging}", timeout)
            if result.exit_code != 0:
                return result
        return await self.run(handle, f"base64 -d {staging} > {target} && rm -f {staging}", timeout)


class LocalSandbox(SandboxRuntime):
    """
    Runs shell commands as subprocesses inside a throwaway temp directory.

    Not a security boundary: it only keeps check artifacts out of the
    working tree and bounds each command and the sandbox's total lifetime.
    """

    def __init__(self, prefix: str = "outagex-sandbox-") -> None:
        self._prefix = prefix
        self._deadlines: dict[str, float] = {}

    async def create(self, timeout: float) -> str:
        try:
            handle = tempfile.mkdtemp(prefix=self._prefix)
        except OSError as e:
            raise SandboxError(f"could not create sandbox directory: {e}") from e
        self._deadlines[handle] = asyncio.get_running_loop().time() + timeout
        logger.debug("Sandbox created", extra={"sandbox": handle, "timeout": timeout})
        return handle

    async def run(self, handle: str, command: str, timeout: float) -> CommandResult:
        deadline = self._deadlines.get(handle)
        if deadline is None:
            raise SandboxError(f"unknown sandbox {handle}")
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise SandboxError("sandbox lifetime expired")

        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=handle,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=min(timeout, remaining))
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise SandboxError(f"command timed out after {min(timeout, remaining):.0f}s: {command}") from e
        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode or 0,
        )

    async def write_file(self, handle: str, path: str, content: str, timeout: float) -> CommandResult:
        deadline = self._deadlines.get(handle)
        if deadline is None:
            raise SandboxError(f"unknown sandbox {handle}")
        if deadline <= asyncio.get_running_loop().time():
            raise SandboxError("sandbox lifetime expired")
        root = Path(handle).resolve()
        target = (root / path).resolve()
        if root not in target.parents:
            raise SandboxError(f"path escapes sandbox: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            return CommandResult(stderr=str(e), exit_code=1)
        return CommandResult()

    async def destroy(self, handle: str) -> None:
        self._deadlines.pop(handle, None)
        shutil.rmtree(handle, ignore_errors=True)
        logger.debug("Sandbox destroyed", extra={"sandbox": handle})
