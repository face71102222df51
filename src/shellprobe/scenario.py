"""Scenarios — scripted send/expect conversations with a program under test.

A scenario is a list of steps. Each step either types a line into the
child's stdin or waits for a regex in its terminal output. Runs happen in
a fresh temporary directory, so files the commands create never collide
between runs and are removed afterwards.
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from shellprobe.config import ProbeConfig
from shellprobe.pty.errors import HarnessError
from shellprobe.pty.harness import ProcessHarness, Session
from shellprobe.pty.reader import ExpectMatch, ExpectTimeout

logger = logging.getLogger(__name__)


class Step(BaseModel):
    """One scenario step: exactly one of ``send`` or ``expect``."""

    send: str | None = Field(default=None, description="Line to type (newline added)")
    expect: str | None = Field(default=None, description="Regex to wait for")
    timeout: float | None = Field(
        default=None, gt=0, description="Seconds to wait; session default if unset"
    )
    consume: bool = Field(
        default=True,
        description="Drop output up to the match so later steps only see newer text",
    )
    message: str = Field(default="", description="Explanation shown when the step fails")

    @model_validator(mode="after")
    def check_one_action(self) -> Step:
        if (self.send is None) == (self.expect is None):
            raise ValueError("a step needs exactly one of 'send' or 'expect'")
        return self

    def describe(self) -> str:
        if self.send is not None:
            return f"send {self.send!r}"
        return f"expect /{self.expect}/"


class Scenario(BaseModel):
    """A named list of steps, optionally bound to a command."""

    name: str
    description: str = ""
    command: list[str] | None = Field(
        default=None, description="argv to run; the configured shell if unset"
    )
    steps: list[Step] = Field(default_factory=list)

    @classmethod
    def load(cls, path: str | Path) -> Scenario:
        """Load a scenario from a JSON file."""
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(
                f"Scenario file {str(path)!r} must hold a JSON object, "
                f"not {type(data).__name__}"
            )
        return cls.model_validate({"name": Path(path).stem, **data})


BUILTIN_SCENARIOS: dict[str, Scenario] = {
    "jobs": Scenario(
        name="jobs",
        description="Background job plus foreground commands, then the jobs builtin",
        steps=[
            Step(send="touch artifact.txt"),
            Step(send="sleep 10 &"),
            Step(send="ls -s artifact.txt"),
            Step(send="jobs"),
            Step(
                expect=r"0 artifact\.txt",
                message="ls did not print the size of the file",
            ),
            Step(
                expect=r"sleep",
                message="jobs did not print the name of the sleep command",
            ),
        ],
    ),
    "echo": Scenario(
        name="echo",
        description="Run a single foreground command and read its output",
        steps=[
            Step(send="echo hello"),
            Step(expect=r"hello", message="echo output not seen"),
        ],
    ),
}


@dataclass
class StepOutcome:
    """Result of one executed step."""

    index: int
    step: Step
    passed: bool
    detail: str = ""


@dataclass
class ScenarioReport:
    """Result of a whole scenario run."""

    scenario: Scenario
    outcomes: list[StepOutcome] = field(default_factory=list)
    error: str | None = None  # Set when the session could not even start

    @property
    def passed(self) -> bool:
        return (
            self.error is None
            and len(self.outcomes) == len(self.scenario.steps)
            and all(o.passed for o in self.outcomes)
        )

    @property
    def failure(self) -> StepOutcome | None:
        """The first failing step, if any."""
        for outcome in self.outcomes:
            if not outcome.passed:
                return outcome
        return None


class ScenarioRunner:
    """Runs scenarios in sandboxed sessions and reports per-step results."""

    def __init__(self, config: ProbeConfig | None = None) -> None:
        self.config = config or ProbeConfig()

    def run(
        self, scenario: Scenario, command: list[str] | None = None
    ) -> ScenarioReport:
        """Run ``scenario`` to completion or its first failing step.

        Args:
            scenario: Steps to run.
            command: argv overriding both the scenario's and the configured one.

        Returns:
            A report; harness errors are recorded there, not raised.
        """
        report = ScenarioReport(scenario=scenario)
        argv = command or scenario.command or None
        sandbox = Path(tempfile.mkdtemp(prefix="shellprobe_"))
        harness = ProcessHarness(
            self.config.harness, self.config.report, cwd=str(sandbox)
        )
        logger.info("Running scenario %s in %s", scenario.name, sandbox)

        session: Session | None = None
        try:
            try:
                session = harness.start(argv)
            except HarnessError as e:
                report.error = str(e)
                return report

            for index, step in enumerate(scenario.steps):
                outcome = self._run_step(session, index, step)
                report.outcomes.append(outcome)
                if not outcome.passed:
                    logger.info(
                        "Scenario %s failed at step %d: %s",
                        scenario.name,
                        index,
                        outcome.detail,
                    )
                    break
            return report
        finally:
            if session is not None:
                if self.config.harness.kill_on_finish:
                    session.kill()
                session.stop()
            shutil.rmtree(sandbox, ignore_errors=True)

    def _run_step(self, session: Session, index: int, step: Step) -> StepOutcome:
        try:
            if step.send is not None:
                session.send_line(step.send)
                return StepOutcome(index=index, step=step, passed=True)

            assert step.expect is not None
            result = session.expect(step.expect, timeout=step.timeout, consume=step.consume)
        except HarnessError as e:
            return StepOutcome(index=index, step=step, passed=False, detail=str(e))

        if isinstance(result, ExpectMatch):
            return StepOutcome(
                index=index, step=step, passed=True, detail=f"matched {result.text!r}"
            )
        assert isinstance(result, ExpectTimeout)
        detail = result.message
        if step.message:
            detail = f"{step.message}: {detail}"
        return StepOutcome(index=index, step=step, passed=False, detail=detail)
