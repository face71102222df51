"""Tests for shellprobe.scenario (Step, Scenario, ScenarioRunner)."""

from __future__ import annotations

import errno
import json
import os
import shutil
import tempfile

import pytest
from pydantic import ValidationError

from shellprobe.config import HarnessConfig, ProbeConfig
from shellprobe.scenario import BUILTIN_SCENARIOS, Scenario, ScenarioRunner, Step

needs_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")
needs_bash = pytest.mark.skipif(
    shutil.which("bash") is None, reason="bash not available"
)


@pytest.fixture
def runner() -> ScenarioRunner:
    return ScenarioRunner(ProbeConfig(harness=HarnessConfig(default_timeout=3.0)))


# ---------------------------------------------------------------------------
# Step / Scenario models
# ---------------------------------------------------------------------------


class TestStep:
    def test_send(self) -> None:
        step = Step(send="jobs")
        assert step.describe() == "send 'jobs'"
        assert step.consume is True

    def test_expect(self) -> None:
        step = Step(expect=r"sleep", timeout=2)
        assert step.describe() == "expect /sleep/"
        assert step.timeout == 2

    def test_needs_one_action(self) -> None:
        with pytest.raises(ValidationError):
            Step()

    def test_rejects_both_actions(self) -> None:
        with pytest.raises(ValidationError):
            Step(send="jobs", expect="sleep")

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValidationError):
            Step(expect="x", timeout=0)


class TestScenarioLoad:
    def test_load_json(self, tmp_path) -> None:
        path = tmp_path / "bg.json"
        path.write_text(
            json.dumps(
                {
                    "command": ["sh"],
                    "steps": [
                        {"send": "sleep 10 &"},
                        {"send": "jobs"},
                        {"expect": "sleep", "timeout": 2, "message": "no job"},
                    ],
                }
            )
        )
        scenario = Scenario.load(path)
        assert scenario.name == "bg"
        assert scenario.command == ["sh"]
        assert len(scenario.steps) == 3
        assert scenario.steps[2].message == "no job"

    def test_load_keeps_explicit_name(self, tmp_path) -> None:
        path = tmp_path / "file.json"
        path.write_text(json.dumps({"name": "named", "steps": []}))
        assert Scenario.load(path).name == "named"

    def test_load_invalid_step(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"steps": [{"timeout": 1}]}))
        with pytest.raises(ValidationError):
            Scenario.load(path)

    def test_load_rejects_non_object(self, tmp_path) -> None:
        path = tmp_path / "list.json"
        path.write_text(json.dumps([{"send": "jobs"}]))
        with pytest.raises(ValueError, match="JSON object"):
            Scenario.load(path)


class TestBuiltins:
    def test_names(self) -> None:
        assert set(BUILTIN_SCENARIOS) == {"jobs", "echo"}

    def test_jobs_sends_before_expecting(self) -> None:
        steps = BUILTIN_SCENARIOS["jobs"].steps
        assert [s.send for s in steps[:4]] == [
            "touch artifact.txt",
            "sleep 10 &",
            "ls -s artifact.txt",
            "jobs",
        ]
        assert [s.expect for s in steps[4:]] == [r"0 artifact\.txt", "sleep"]


# ---------------------------------------------------------------------------
# ScenarioRunner
# ---------------------------------------------------------------------------


@needs_sh
class TestScenarioRunner:
    def test_echo_passes(self, runner: ScenarioRunner) -> None:
        report = runner.run(BUILTIN_SCENARIOS["echo"], command=["sh"])
        assert report.passed
        assert report.failure is None
        assert len(report.outcomes) == 2
        assert report.outcomes[1].detail == "matched 'hello'"

    def test_failing_step_stops_run(self, runner: ScenarioRunner) -> None:
        scenario = Scenario(
            name="fails",
            steps=[
                Step(send="echo something"),
                Step(expect="never printed", timeout=0.3, message="nothing came"),
                Step(send="echo unreachable"),
            ],
        )
        report = runner.run(scenario, command=["sh"])
        assert not report.passed
        assert len(report.outcomes) == 2
        failure = report.failure
        assert failure is not None
        assert failure.index == 1
        assert failure.detail.startswith("nothing came: pattern 'never printed'")
        assert "something" in failure.detail

    def test_spawn_error_recorded(self, runner: ScenarioRunner) -> None:
        report = runner.run(
            BUILTIN_SCENARIOS["echo"], command=["/nonexistent/shell-under-test"]
        )
        assert not report.passed
        assert report.error is not None
        assert report.outcomes == []

    def test_descriptor_exhaustion_recorded(
        self, runner: ScenarioRunner, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def no_pipe():
            raise OSError(errno.EMFILE, "Too many open files")

        monkeypatch.setattr(os, "pipe", no_pipe)
        report = runner.run(BUILTIN_SCENARIOS["echo"], command=["sh"])
        assert not report.passed
        assert "Too many open files" in report.error
        assert report.outcomes == []

    def test_write_error_recorded(self, runner: ScenarioRunner) -> None:
        scenario = Scenario(
            name="exits",
            steps=[
                Step(send="exit"),
                Step(expect="never", timeout=1),
                Step(send="echo too late"),
            ],
        )
        report = runner.run(scenario, command=["sh"])
        assert not report.passed
        failure = report.failure
        assert failure is not None
        # Either the terminal hangs up first or the write hits a closed pipe
        assert failure.index in (1, 2)

    def test_scenario_command_used(self, runner: ScenarioRunner) -> None:
        scenario = Scenario(
            name="own-command",
            command=["sh", "-c", "echo from-scenario; sleep 5"],
            steps=[Step(expect="from-scenario", timeout=3)],
        )
        assert runner.run(scenario).passed

    def test_configured_shell_used_by_default(self) -> None:
        config = ProbeConfig(harness=HarnessConfig(shell=["sh"]))
        assert ScenarioRunner(config).run(BUILTIN_SCENARIOS["echo"]).passed

    def test_runs_in_removed_sandbox(
        self, runner: ScenarioRunner, tmp_path, monkeypatch
    ) -> None:
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
        scenario = Scenario(
            name="sandbox",
            steps=[
                Step(send="touch artifact.txt"),
                Step(send="pwd"),
                Step(expect=r"shellprobe_\w+", timeout=3),
            ],
        )
        report = runner.run(scenario, command=["sh"])
        assert report.passed
        # The sandbox, and the file created in it, are gone
        assert list(tmp_path.iterdir()) == []

    @needs_bash
    def test_jobs_builtin_with_bash(self, runner: ScenarioRunner) -> None:
        report = runner.run(BUILTIN_SCENARIOS["jobs"], command=["bash"])
        assert report.passed, report.failure
