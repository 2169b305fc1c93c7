"""Tests for the embedded command executor and profiler."""

from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest

from kubediag.executors import CommandExecutor, ProfilerRunner
from kubediag.models.abnormal import (
    Abnormal,
    CommandExecutorSpec,
    GoProfilerSpec,
    JavaProfilerSpec,
    JavaProfilerType,
    ObjectMeta,
    ProcessorType,
    ProfilerSpec,
)


def _command(*args: str, timeout_seconds: int = 0) -> CommandExecutorSpec:
    return CommandExecutorSpec(command=list(args), type=ProcessorType.DIAGNOSER, timeout_seconds=timeout_seconds)


# ---------------------------------------------------------------------------
# CommandExecutor
# ---------------------------------------------------------------------------


class TestCommandExecutor:
    async def test_captures_stdout_and_stderr(self) -> None:
        script = "import sys; print('out'); print('err', file=sys.stderr)"
        status = await CommandExecutor().run(_command(sys.executable, "-c", script))

        assert status.stdout.strip() == "out"
        assert status.stderr.strip() == "err"
        assert status.error == ""
        assert status.type == ProcessorType.DIAGNOSER
        assert status.command[0] == sys.executable

    async def test_non_zero_exit_is_reported(self) -> None:
        status = await CommandExecutor().run(_command(sys.executable, "-c", "raise SystemExit(2)"))
        assert status.error == "command exited with status 2"

    async def test_timeout_kills_the_command(self) -> None:
        spec = _command(sys.executable, "-c", "import time; time.sleep(30)", timeout_seconds=1)
        status = await CommandExecutor().run(spec)
        assert "timed out after 1s" in status.error

    async def test_missing_binary_is_reported(self) -> None:
        status = await CommandExecutor().run(_command("/nonexistent/kubediag-test-binary"))
        assert status.error.startswith("unable to start command")

    async def test_empty_command_is_reported(self) -> None:
        status = await CommandExecutor().run(_command())
        assert status.error == "command must not be empty"


# ---------------------------------------------------------------------------
# ProfilerRunner
# ---------------------------------------------------------------------------


def _abnormal() -> Abnormal:
    return Abnormal(metadata=ObjectMeta(name="pod-oom", namespace="prod"))


@pytest.fixture
async def runner(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/debug/pprof/heap":
            return httpx.Response(200, content=b"pprof-bytes")
        return httpx.Response(404)

    profiler = ProfilerRunner(tmp_path, transport=httpx.MockTransport(handler))
    yield profiler
    await profiler.close()


class TestProfilerRunner:
    async def test_go_profile_is_stored_under_data_root(self, runner: ProfilerRunner, tmp_path: Path) -> None:
        spec = ProfilerSpec(
            name="heap",
            type=ProcessorType.DIAGNOSER,
            go=GoProfilerSpec(source="http://10.0.0.2:6060/debug/pprof/heap"),
        )
        status = await runner.run(_abnormal(), spec)

        expected = tmp_path / "profilers" / "prod.pod-oom" / "heap.prof"
        assert status.error == ""
        assert status.go is not None
        assert status.go.endpoint == str(expected)
        assert expected.read_bytes() == b"pprof-bytes"

    async def test_go_download_failure_is_reported(self, runner: ProfilerRunner) -> None:
        spec = ProfilerSpec(
            name="cpu",
            type=ProcessorType.DIAGNOSER,
            go=GoProfilerSpec(source="http://10.0.0.2:6060/debug/pprof/profile"),
        )
        status = await runner.run(_abnormal(), spec)
        assert status.go is None
        assert "404" in status.error

    async def test_java_profiler_is_unsupported(self, runner: ProfilerRunner) -> None:
        spec = ProfilerSpec(
            name="dump",
            type=ProcessorType.DIAGNOSER,
            java=JavaProfilerSpec(type=JavaProfilerType.ARTHAS),
        )
        status = await runner.run(_abnormal(), spec)
        assert status.java is not None
        assert status.java.type == JavaProfilerType.ARTHAS
        assert "not supported" in status.error

    @pytest.mark.parametrize("both", [True, False])
    async def test_exactly_one_profiler_kind_required(self, runner: ProfilerRunner, both: bool) -> None:
        spec = ProfilerSpec(name="bad", type=ProcessorType.DIAGNOSER)
        if both:
            spec.go = GoProfilerSpec(source="http://10.0.0.2:6060/debug/pprof/heap")
            spec.java = JavaProfilerSpec(type=JavaProfilerType.MEMORY_ANALYZER)
        status = await runner.run(_abnormal(), spec)
        assert status.error == "exactly one of go or java must be set"

    async def test_malformed_source_is_reported(self, runner: ProfilerRunner) -> None:
        spec = ProfilerSpec(
            name="heap",
            type=ProcessorType.DIAGNOSER,
            go=GoProfilerSpec(source="http://[::1"),
        )
        status = await runner.run(_abnormal(), spec)
        assert status.go is None
        assert "failed" in status.error

    @pytest.mark.parametrize("name", ["../../../etc/cron.d/x", "nested/heap", "..", ""])
    async def test_unsafe_profiler_name_is_rejected(self, runner: ProfilerRunner, tmp_path: Path, name: str) -> None:
        spec = ProfilerSpec(
            name=name,
            type=ProcessorType.DIAGNOSER,
            go=GoProfilerSpec(source="http://10.0.0.2:6060/debug/pprof/heap"),
        )
        status = await runner.run(_abnormal(), spec)
        assert status.go is None
        assert "invalid profiler name" in status.error
        assert not (tmp_path / "profilers").exists()
