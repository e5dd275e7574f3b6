"""
Research agent abstraction.

AgentRunner is the capability the orchestrator drives: one initial pass that
opens a session, then resume passes against that session. ClaudeCliRunner is
the production implementation; it spawns the headless agent CLI in the job's
working directory and parses its JSON result from stdout.

Cancellation is observed while the subprocess runs: the runner polls the
process and kills it as soon as the job's token fires.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .cancellation import CancelToken

OUTPUT_FORMAT = "json"
MAX_OUTPUT_TOKENS_ENV = "CLAUDE_CODE_MAX_OUTPUT_TOKENS"


class AgentError(Exception):
    """Raised when an agent invocation fails."""


class AgentCancelledError(AgentError):
    """Raised when an agent invocation is stopped by its cancel token."""


# =============================================================================
# Invocation Options / Response
# =============================================================================


@dataclass
class InitialPassOptions:
    """Options for the pass that opens a new agent session."""

    prompt: str
    work_dir: Path | str
    system_prompt_file: str = ""
    model: str = ""
    allowed_tools: list[str] = field(default_factory=list)


@dataclass
class ResumePassOptions:
    """Options for a pass that continues an existing session."""

    prompt: str
    session_id: str
    work_dir: Path | str
    json_schema_file: str = ""  # final pass only


class AgentResponse(BaseModel):
    """Result document the agent CLI prints on stdout."""

    model_config = ConfigDict(extra="ignore")

    type: str = ""
    session_id: str = ""
    result: str = ""
    structured_output: Any = None
    is_error: bool = False
    error_message: str = ""


@runtime_checkable
class AgentRunner(Protocol):
    """Protocol for research agent backends."""

    def run_initial_pass(
        self, options: InitialPassOptions, token: CancelToken | None = None
    ) -> AgentResponse:
        """Start a new session."""
        ...

    def run_resume_pass(
        self, options: ResumePassOptions, token: CancelToken | None = None
    ) -> AgentResponse:
        """Continue the session named in ``options``."""
        ...


# =============================================================================
# Argument Building / Response Parsing
# =============================================================================


def build_initial_args(options: InitialPassOptions) -> list[str]:
    """Build CLI arguments for an initial pass (no binary, no permission flag)."""
    args = ["-p", options.prompt, "--output-format", OUTPUT_FORMAT]
    if options.system_prompt_file:
        args += ["--system-prompt-file", options.system_prompt_file]
    if options.model:
        args += ["--model", options.model]
    if options.allowed_tools:
        args += ["--allowedTools", ",".join(options.allowed_tools)]
    return args


def build_resume_args(options: ResumePassOptions) -> list[str]:
    """Build CLI arguments for a resume pass."""
    args = [
        "-p", options.prompt,
        "--resume", options.session_id,
        "--output-format", OUTPUT_FORMAT,
    ]
    if options.json_schema_file:
        args += ["--json-schema", options.json_schema_file]
    return args


def parse_agent_response(data: bytes | str) -> AgentResponse:
    """
    Parse the CLI's stdout.

    Raises:
        AgentError: Empty output, unparseable output, or an error result
    """
    if not data or not data.strip():
        raise AgentError("cli returned empty output")

    try:
        response = AgentResponse.model_validate_json(data)
    except PydanticValidationError as e:
        snippet = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        if len(snippet) > 200:
            snippet = snippet[:200] + "..."
        raise AgentError(f"parse cli response: {e}; raw output: {snippet}") from e

    if response.is_error:
        raise AgentError(f"cli reported error: {response.error_message}")

    return response


# =============================================================================
# Production Runner
# =============================================================================


class ClaudeCliRunner:
    """Runs research passes through the headless agent CLI."""

    def __init__(
        self,
        binary_path: str = "claude",
        max_output_tokens: int = 65536,
        poll_interval: float = 0.5,
    ):
        self.binary_path = binary_path
        self.max_output_tokens = max_output_tokens
        self.poll_interval = poll_interval

    def run_initial_pass(
        self, options: InitialPassOptions, token: CancelToken | None = None
    ) -> AgentResponse:
        return self._run(options.work_dir, build_initial_args(options), token)

    def run_resume_pass(
        self, options: ResumePassOptions, token: CancelToken | None = None
    ) -> AgentResponse:
        return self._run(options.work_dir, build_resume_args(options), token)

    def build_command(self, args: list[str]) -> list[str]:
        return [self.binary_path, *args, "--dangerously-skip-permissions"]

    def _run(self, work_dir: Path | str, args: list[str], token: CancelToken | None) -> AgentResponse:
        if token is not None and token.cancelled:
            raise AgentCancelledError("agent run cancelled before start")

        env = {**os.environ, MAX_OUTPUT_TOKENS_ENV: str(self.max_output_tokens)}
        try:
            proc = subprocess.Popen(
                self.build_command(args),
                cwd=str(work_dir),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise AgentError(f"start cli {self.binary_path}: {e}") from e

        logger.debug(f"Agent CLI started (pid {proc.pid}) in {work_dir}")

        while True:
            if token is not None and token.cancelled:
                proc.kill()
                proc.communicate()
                logger.info(f"Agent CLI (pid {proc.pid}) killed on cancellation")
                raise AgentCancelledError("agent run cancelled")
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                continue

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace").strip() or "(no stderr)"
            raise AgentError(f"cli exited with status {proc.returncode}; stderr: {stderr_text}")

        return parse_agent_response(stdout)
