"""Configuration — Pydantic models for shellprobe settings."""

from __future__ import annotations

import json
import os
import shlex
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class HarnessConfig(BaseModel):
    """How sessions are spawned and how long ``expect`` waits by default."""

    shell: list[str] = Field(
        default_factory=lambda: ["sh"],
        description="Command (argv) run when a scenario does not name one",
    )
    default_timeout: float = Field(
        default=5.0, gt=0, description="Default expect timeout in seconds"
    )
    read_chunk_size: int = Field(default=4096, gt=0)
    term: str = Field(
        default="dumb",
        description="TERM for the child; 'dumb' keeps escape sequences to a minimum",
    )
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables for the child"
    )
    kill_on_finish: bool = Field(
        default=True,
        description="Kill the child's process group when a scenario ends",
    )


class ReportConfig(BaseModel):
    """Size of the transcript excerpt shown in timeout reports."""

    excerpt_lines: int = Field(default=20, gt=0)
    excerpt_bytes: int = Field(default=2048, gt=0)


class ProbeConfig(BaseModel):
    """Top-level shellprobe configuration."""

    harness: HarnessConfig = Field(default_factory=HarnessConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> ProbeConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            SHELLPROBE_SHELL    - Shell command line (shell-split), e.g. "./ensishell"
            SHELLPROBE_TIMEOUT  - Default expect timeout in seconds
            SHELLPROBE_TERM     - TERM value passed to the child
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        harness = config_data.get("harness", {})

        env_shell = os.environ.get("SHELLPROBE_SHELL")
        if env_shell:
            harness["shell"] = shlex.split(env_shell)

        env_timeout = os.environ.get("SHELLPROBE_TIMEOUT")
        if env_timeout:
            harness["default_timeout"] = env_timeout

        env_term = os.environ.get("SHELLPROBE_TERM")
        if env_term:
            harness["term"] = env_term

        if harness:
            config_data["harness"] = harness

        return cls.model_validate(config_data)
