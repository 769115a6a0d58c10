"""Tests for shell execution and the local, preserving and docker environments."""

import shutil
import time
from pathlib import Path

import pytest
from conftest import commit_all

from agenteval.environment import (
    NOT_FOUND_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    DockerEnvironment,
    LocalEnvironment,
    PreservingLocalEnvironment,
    build_environment,
    run_process,
)
from agenteval.environment.docker import BOUNDED_EXEC_SCRIPT
from agenteval.errors import InfrastructureError
from agenteval.schemas import EnvironmentConfig


class TestRunProcess:
    """Bounded subprocess execution."""

    def test_captures_output_and_exit_code(self, tmp_path: Path):
        result = run_process("echo out; echo err >&2; exit 3", cwd=tmp_path)

        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert result.exit_code == 3
        assert not result.ok

    def test_timeout_kills_process_and_reports_124(self, tmp_path: Path):
        """A 100ms timeout on a 10s sleep returns promptly with exit 124."""
        start = time.monotonic()
        result = run_process("sleep 10", cwd=tmp_path, timeout_ms=100)
        elapsed = time.monotonic() - start

        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert "timed out after 100ms" in result.stderr
        assert elapsed < 5

    @pytest.mark.skipif(shutil.which("setsid") is None, reason="needs setsid")
    def test_timeout_bounded_when_descendant_detaches(self, tmp_path: Path):
        """A child in its own session keeps the pipes open; the call still returns."""
        start = time.monotonic()
        result = run_process("echo started; setsid sleep 8 & sleep 8", cwd=tmp_path, timeout_ms=100)
        elapsed = time.monotonic() - start

        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert "timed out after 100ms" in result.stderr
        assert "started" in result.stdout
        assert elapsed < 5

    def test_missing_binary_is_a_result(self, tmp_path: Path):
        result = run_process(["definitely-not-a-real-binary-xyz"], cwd=tmp_path)

        assert result.exit_code == NOT_FOUND_EXIT_CODE
        assert "Command not found" in result.stderr


class TestLocalEnvironment:
    """Git-based isolation and diff capture."""

    def test_setup_restores_committed_state(self, git_repo: Path):
        (git_repo / "README.md").write_text("changed\n")
        (git_repo / "stray.txt").write_text("stray\n")
        (git_repo / ".agenteval").mkdir()
        (git_repo / ".agenteval" / "ledger.jsonl").write_text("{}\n")

        LocalEnvironment().setup(git_repo)

        assert (git_repo / "README.md").read_text() == "# Demo\n"
        assert not (git_repo / "stray.txt").exists()
        assert (git_repo / ".agenteval" / "ledger.jsonl").exists()

    def test_clean_tree_has_empty_diff(self, git_repo: Path):
        env = LocalEnvironment()
        env.setup(git_repo)

        assert env.get_diff(git_repo) == ""

    def test_diff_includes_new_and_modified_files(self, git_repo: Path):
        env = LocalEnvironment()
        env.setup(git_repo)
        (git_repo / "README.md").write_text("# Demo\nmore\n")
        (git_repo / "src").mkdir()
        (git_repo / "src" / "new.py").write_text("print('hi')\n")

        diff = env.get_diff(git_repo)

        assert "diff --git a/README.md b/README.md" in diff
        assert "diff --git a/src/new.py b/src/new.py" in diff
        assert "+print('hi')" in diff

    def test_diff_excludes_preserved_output(self, git_repo: Path):
        env = LocalEnvironment()
        env.setup(git_repo)
        (git_repo / ".agenteval").mkdir()
        (git_repo / ".agenteval" / "ledger.jsonl").write_text("{}\n")

        assert ".agenteval" not in env.get_diff(git_repo)

    def test_diff_is_repeatable(self, git_repo: Path):
        env = LocalEnvironment()
        env.setup(git_repo)
        (git_repo / "a.txt").write_text("a\n")

        assert env.get_diff(git_repo) == env.get_diff(git_repo)

    def test_repository_without_commits(self, empty_repo: Path):
        env = LocalEnvironment()
        env.setup(empty_repo)
        (empty_repo / "hello.txt").write_text("hello\n")

        diff = env.get_diff(empty_repo)

        assert "diff --git a/hello.txt b/hello.txt" in diff
        env.setup(empty_repo)
        assert not (empty_repo / "hello.txt").exists()

    def test_execute_runs_in_workspace(self, git_repo: Path):
        result = LocalEnvironment().execute("ls", git_repo)

        assert result.exit_code == 0
        assert "README.md" in result.stdout

    def test_setup_outside_repository_raises(self, tmp_path: Path):
        plain = tmp_path / "plain"
        plain.mkdir()

        with pytest.raises(InfrastructureError, match="not a git repository"):
            LocalEnvironment().setup(plain)

    def test_setup_missing_directory_raises(self, tmp_path: Path):
        with pytest.raises(InfrastructureError, match="does not exist"):
            LocalEnvironment().setup(tmp_path / "missing")


class TestPreservingLocalEnvironment:
    def test_keeps_and_restores_uncommitted_work(self, git_repo: Path):
        (git_repo / "README.md").write_text("# Demo\nwork in progress\n")
        env = PreservingLocalEnvironment()

        env.setup(git_repo)
        assert (git_repo / "README.md").read_text() == "# Demo\nwork in progress\n"

        (git_repo / "agent.txt").write_text("agent output\n")
        env.teardown(git_repo)

        assert not (git_repo / "agent.txt").exists()
        assert (git_repo / "README.md").read_text() == "# Demo\nwork in progress\n"

    def test_restores_untracked_files(self, git_repo: Path):
        (git_repo / "notes.txt").write_text("my notes\n")
        env = PreservingLocalEnvironment()

        env.setup(git_repo)
        (git_repo / "agent.txt").write_text("agent output\n")
        env.teardown(git_repo)

        assert not (git_repo / "agent.txt").exists()
        assert (git_repo / "notes.txt").read_text() == "my notes\n"

    def test_repository_without_commits_is_left_untouched(self, empty_repo: Path):
        (empty_repo / "mywork.py").write_text("print('mine')\n")
        env = PreservingLocalEnvironment()

        with pytest.raises(InfrastructureError, match="no commits"):
            env.setup(empty_repo)
        env.teardown(empty_repo)

        assert (empty_repo / "mywork.py").read_text() == "print('mine')\n"

    def test_clean_tree_teardown_resets(self, git_repo: Path):
        env = PreservingLocalEnvironment()
        env.setup(git_repo)
        (git_repo / "README.md").write_text("agent edit\n")

        env.teardown(git_repo)

        assert (git_repo / "README.md").read_text() == "# Demo\n"

    def test_failed_reapply_is_logged_not_raised(self, git_repo: Path, caplog):
        (git_repo / "README.md").write_text("# Demo\nlocal\n")
        env = PreservingLocalEnvironment()
        env.setup(git_repo)
        # Move HEAD so the snapshot no longer applies.
        (git_repo / "README.md").write_text("completely different\n")
        commit_all(git_repo, "rewrite")

        env.teardown(git_repo)

        assert "Could not restore uncommitted changes" in caplog.text


class TestDockerEnvironment:
    def test_execute_before_setup(self, tmp_path: Path):
        env = DockerEnvironment(image="alpine:3")

        result = env.execute("echo hi", tmp_path)

        assert result.exit_code == 1
        assert result.stderr == "Container not started"

    def test_requires_image_or_dockerfile(self):
        with pytest.raises(ValueError):
            DockerEnvironment()

    def test_exec_argv_targets_work_dir(self):
        env = DockerEnvironment(image="alpine:3", work_dir="/code")
        env.container_id = "abc123"

        assert env._exec_argv("make test") == [
            "docker",
            "exec",
            "-w",
            "/code",
            "abc123",
            "sh",
            "-c",
            "make test",
        ]
        assert env._exec_argv("make test", 60_000)[-3:] == [BOUNDED_EXEC_SCRIPT, "make test", "60"]

    def test_setup_failure_is_infrastructure_error(self, tmp_path: Path, monkeypatch):
        from agenteval.environment import docker as docker_module
        from agenteval.environment.shell import EnvironmentCommandResult

        monkeypatch.setattr(
            docker_module,
            "run_process",
            lambda *args, **kwargs: EnvironmentCommandResult("", "no such image", 125),
        )

        with pytest.raises(InfrastructureError, match="docker create failed: no such image"):
            DockerEnvironment(image="missing:latest").setup(tmp_path)

    def test_teardown_removes_container_and_built_image(self, tmp_path: Path, monkeypatch):
        from agenteval.environment import docker as docker_module
        from agenteval.environment.shell import EnvironmentCommandResult

        calls: list[list[str]] = []
        timeouts: list[int | None] = []

        def fake_run(argv, **kwargs):
            calls.append(list(argv))
            timeouts.append(kwargs.get("timeout_ms"))
            return EnvironmentCommandResult("container-1\n", "", 0)

        monkeypatch.setattr(docker_module, "run_process", fake_run)
        env = DockerEnvironment(dockerfile="Dockerfile")

        env.setup(tmp_path)
        env.teardown(tmp_path)

        assert calls[0][:2] == ["docker", "build"]
        assert calls[1][:2] == ["docker", "create"]
        assert calls[2] == ["docker", "start", "container-1"]
        assert calls[3] == ["docker", "rm", "-f", "container-1"]
        assert calls[4][:3] == ["docker", "rmi", "-f"]
        assert env.container_id is None
        assert all(timeout is not None and timeout > 0 for timeout in timeouts)

    def test_execute_bounds_command_inside_container(self, monkeypatch):
        from agenteval.environment import docker as docker_module
        from agenteval.environment.shell import EnvironmentCommandResult

        calls: list[tuple[list[str], int | None]] = []

        def fake_run(argv, **kwargs):
            calls.append((list(argv), kwargs.get("timeout_ms")))
            return EnvironmentCommandResult("", "", 0)

        monkeypatch.setattr(docker_module, "run_process", fake_run)
        env = DockerEnvironment(image="alpine:3")
        env.container_id = "abc123"

        env.execute("npm test", Path("."), timeout_ms=2_500)

        [(argv, timeout_ms)] = calls
        assert argv[-3:] == [BOUNDED_EXEC_SCRIPT, "npm test", "3"]
        assert timeout_ms == 2_500

    @pytest.mark.skipif(shutil.which("timeout") is None, reason="needs timeout")
    def test_bounded_script_kills_the_command(self, tmp_path: Path):
        """The wrapper ends the command on its own, without the host-side kill."""
        assert run_process(["sh", "-c", BOUNDED_EXEC_SCRIPT, "echo hi", "5"]).stdout == "hi\n"

        start = time.monotonic()
        result = run_process(["sh", "-c", BOUNDED_EXEC_SCRIPT, "sleep 10", "1"], cwd=tmp_path)

        assert result.exit_code != 0
        assert time.monotonic() - start < 5


class TestBuildEnvironment:
    def test_default_is_local(self):
        assert isinstance(build_environment(), LocalEnvironment)

    def test_variants(self):
        assert isinstance(
            build_environment(EnvironmentConfig(type="preserving-local")),
            PreservingLocalEnvironment,
        )
        docker = build_environment(EnvironmentConfig(type="docker", image="node:20", work_dir="/app"))
        assert isinstance(docker, DockerEnvironment)
        assert docker.work_dir == "/app"
