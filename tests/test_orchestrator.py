"""
Tests for the lifecycle orchestrator — transitions, gates, and failures.
"""

from pathlib import Path

import pytest

from devx.adapters.mock import MockBuilder, MockEngine, mock_plugins
from devx.adapters.registry import bootstrap_plugins
from devx.core.config.global_config import GlobalConfig
from devx.core.config.metadata import MetadataStore
from devx.core.engine.orchestrator import (
    DelegateOutcome,
    LifecycleOrchestrator,
    aggregate_status,
)
from devx.core.errors import (
    ConfigNotFoundError,
    DelegateFailure,
    NoDefaultConfiguredError,
    PersistenceWriteError,
    PluginNotRegisteredError,
)
from devx.core.models.state import BuildStatus, StackStatus
from devx.core.persistence.state_file import StateStore

S = StackStatus

# ── Status aggregation ───────────────────────────────────────────────


class TestAggregateStatus:
    @pytest.mark.parametrize(
        "statuses, expected",
        [
            ([], S.NOT_CREATED),
            ([S.ERROR, S.RUNNING], S.ERROR),
            ([S.RUNNING, S.RUNNING], S.RUNNING),
            ([S.STOPPED, S.STOPPED], S.STOPPED),
            ([S.RUNNING, S.STOPPED], S.UNKNOWN),
            ([S.RUNNING, S.STARTING], S.STARTING),
            ([S.STOPPED, S.BUILDING], S.STARTING),
            ([S.RUNNING, S.STOPPING], S.STOPPING),
            ([S.STARTING, S.STOPPING], S.STARTING),
            ([S.ERROR, S.STARTING], S.ERROR),
            ([S.UNKNOWN], S.UNKNOWN),
        ],
    )
    def test_precedence(self, statuses, expected):
        assert aggregate_status(statuses) is expected

    def test_accepts_values(self):
        assert aggregate_status(["running"]) is S.RUNNING


class TestDelegateOutcome:
    def test_ok(self):
        outcome = DelegateOutcome("demo", "build", value=1)
        assert outcome.ok
        outcome.raise_for_failure()

    def test_failure_chains_cause(self):
        cause = RuntimeError("disk full")
        outcome = DelegateOutcome("demo", "build", error=cause)
        with pytest.raises(DelegateFailure) as exc:
            outcome.raise_for_failure()
        assert str(exc.value) == "Failed to build stack 'demo': disk full"
        assert exc.value.__cause__ is cause
        assert exc.value.stack == "demo"
        assert exc.value.operation == "build"

    def test_empty_message_uses_type(self):
        assert DelegateOutcome("demo", "stop", error=TimeoutError()).error_message == (
            "TimeoutError"
        )


# ── load ─────────────────────────────────────────────────────────────


class TestLoad:
    def test_creates_initial_state(self, orchestrator: LifecycleOrchestrator, project_dir: Path):
        stack = orchestrator.load()
        record = orchestrator.state.get_one("demo")
        assert record.build_status is BuildStatus.NOT_BUILT
        assert record.runtime_status is StackStatus.UNKNOWN
        assert record.config_path == str(stack.config_path)

    def test_missing_config(self, orchestrator: LifecycleOrchestrator):
        with pytest.raises(ConfigNotFoundError):
            orchestrator.load("no-such-stack")
        assert orchestrator.list_states() == []

    def test_reload_keeps_existing_state(self, orchestrator: LifecycleOrchestrator):
        orchestrator.build()
        orchestrator.load()
        assert orchestrator.state.get_one("demo").build_status is BuildStatus.BUILT


# ── build ────────────────────────────────────────────────────────────


class TestBuild:
    def test_success(self, orchestrator: LifecycleOrchestrator, builder: MockBuilder):
        record = orchestrator.build()
        assert record.build_status is BuildStatus.BUILT
        assert record.last_built_at is not None
        assert record.last_error is None
        assert builder.operations == ["build"]

    def test_records_manifest(self, orchestrator: LifecycleOrchestrator, builder: MockBuilder):
        builder.manifest_path = "/tmp/demo.yaml"
        assert orchestrator.build().manifest_path == "/tmp/demo.yaml"

    def test_passes_builder_options(
        self, orchestrator: LifecycleOrchestrator, builder: MockBuilder, project_dir: Path
    ):
        (project_dir / ".stack.yml").write_text(
            "name: demo\n"
            "builder:\n"
            "  name: mock-builder\n"
            "  options: {no_cache: true}\n"
            "services: {web: {image: nginx}}\n"
        )
        orchestrator.build()
        assert builder.calls_for("build")[0].options == {"no_cache": True}

    def test_failure(self, orchestrator: LifecycleOrchestrator, builder: MockBuilder):
        builder.set_failure("build", "image pull failed")
        with pytest.raises(DelegateFailure) as exc:
            orchestrator.build()
        assert "image pull failed" in str(exc.value)
        assert isinstance(exc.value.__cause__, RuntimeError)

        record = orchestrator.state.get_one("demo")
        assert record.build_status is BuildStatus.ERROR
        assert record.last_error == "image pull failed"

    def test_success_clears_error(self, orchestrator: LifecycleOrchestrator, builder: MockBuilder):
        builder.set_failure("build")
        with pytest.raises(DelegateFailure):
            orchestrator.build()
        builder.clear_failure("build")
        assert orchestrator.build().last_error is None

    def test_building_persisted_during_call(
        self, orchestrator: LifecycleOrchestrator, builder: MockBuilder, state_store: StateStore
    ):
        seen = []
        original = builder.build

        def spy(config, project_path, options=None):
            seen.append(StateStore(state_store.path).get_one("demo").build_status)
            return original(config, project_path, options)

        builder.build = spy
        orchestrator.build()
        assert seen == [BuildStatus.BUILDING]

    def test_unregistered_builder(self, orchestrator: LifecycleOrchestrator, project_dir: Path):
        (project_dir / ".stack.yml").write_text(
            "name: demo\nbuilder: {name: ghost}\nservices: {web: {image: nginx}}\n"
        )
        with pytest.raises(PluginNotRegisteredError):
            orchestrator.build()
        # Resolution errors happen before any state transition
        assert orchestrator.state.get_one("demo").build_status is BuildStatus.NOT_BUILT


# ── start ────────────────────────────────────────────────────────────


class TestStart:
    def test_builds_first_when_not_built(
        self, orchestrator: LifecycleOrchestrator, builder: MockBuilder, engine: MockEngine
    ):
        record = orchestrator.start()
        assert builder.operations == ["build"]
        assert engine.operations == ["start"]
        assert record.build_status is BuildStatus.BUILT
        assert record.runtime_status is StackStatus.RUNNING
        assert record.last_started_at is not None

    def test_skips_build_when_built(
        self, orchestrator: LifecycleOrchestrator, builder: MockBuilder, engine: MockEngine
    ):
        orchestrator.build()
        builder.reset()
        orchestrator.start()
        assert builder.operations == []
        assert engine.operations == ["start"]

    def test_build_failure_blocks_start(
        self, orchestrator: LifecycleOrchestrator, builder: MockBuilder, engine: MockEngine
    ):
        builder.set_failure("build", "no space left")
        with pytest.raises(DelegateFailure) as exc:
            orchestrator.start()
        assert str(exc.value) == "Build failed for stack 'demo', cannot start."
        assert isinstance(exc.value.__cause__, DelegateFailure)
        assert engine.operations == []
        assert orchestrator.state.get_one("demo").build_status is BuildStatus.ERROR

    def test_failure(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        engine.set_failure("start", "port 8080 in use")
        with pytest.raises(DelegateFailure, match="Failed to start stack 'demo'"):
            orchestrator.start()
        record = orchestrator.state.get_one("demo")
        assert record.runtime_status is StackStatus.ERROR
        assert record.last_error == "port 8080 in use"

    def test_failure_recording_error_does_not_mask(
        self,
        orchestrator: LifecycleOrchestrator,
        engine: MockEngine,
        monkeypatch: pytest.MonkeyPatch,
    ):
        orchestrator.build()
        engine.set_failure("start", "port 8080 in use")
        original = orchestrator.state.update

        def flaky_update(name, **changes):
            if changes.get("runtime_status") is StackStatus.ERROR:
                raise PersistenceWriteError("read-only filesystem")
            return original(name, **changes)

        monkeypatch.setattr(orchestrator.state, "update", flaky_update)
        with pytest.raises(DelegateFailure, match="port 8080 in use"):
            orchestrator.start()


# ── stop ─────────────────────────────────────────────────────────────


class TestStop:
    def test_success(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        orchestrator.start()
        record = orchestrator.stop()
        assert record.runtime_status is StackStatus.STOPPED
        assert record.last_started_at is None
        assert engine.operations == ["start", "stop"]

    def test_failure_is_unknown(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        orchestrator.start()
        engine.set_failure("stop", "timeout")
        with pytest.raises(DelegateFailure):
            orchestrator.stop()
        record = orchestrator.state.get_one("demo")
        assert record.runtime_status is StackStatus.UNKNOWN
        assert record.last_error == "timeout"


# ── destroy ──────────────────────────────────────────────────────────


class TestDestroy:
    def test_clears_state_and_metadata(
        self, orchestrator: LifecycleOrchestrator, engine: MockEngine, devx_home: Path
    ):
        orchestrator.start()
        orchestrator.destroy()
        assert orchestrator.state.get_one("demo") is None
        assert MetadataStore(devx_home / "stacks").get("demo") is None
        assert engine.calls_for("destroy")[0].options == {"remove_volumes": False}

    def test_remove_volumes(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        orchestrator.destroy(remove_volumes=True)
        assert engine.calls_for("destroy")[0].options == {"remove_volumes": True}

    def test_removes_manifest(
        self, orchestrator: LifecycleOrchestrator, builder: MockBuilder, tmp_path: Path
    ):
        manifest = tmp_path / "demo.podman-compose.yaml"
        manifest.write_text("services: {}\n")
        builder.manifest_path = str(manifest)
        orchestrator.build()
        orchestrator.destroy()
        assert not manifest.exists()

    def test_missing_manifest_is_fine(
        self, orchestrator: LifecycleOrchestrator, builder: MockBuilder, tmp_path: Path
    ):
        builder.manifest_path = str(tmp_path / "gone.yaml")
        orchestrator.build()
        orchestrator.destroy()
        assert orchestrator.state.get_one("demo") is None

    def test_failure_keeps_record(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        orchestrator.start()
        engine.set_failure("destroy", "container busy")
        with pytest.raises(DelegateFailure):
            orchestrator.destroy()
        record = orchestrator.state.get_one("demo")
        assert record.runtime_status is StackStatus.ERROR
        assert record.last_error == "Destroy failed: container busy"


# ── status ───────────────────────────────────────────────────────────


class TestStatus:
    def test_not_built_skips_engine(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        report = orchestrator.status()
        assert report.status is StackStatus.STOPPED
        assert engine.operations == []
        assert orchestrator.state.get_one("demo").runtime_status is StackStatus.STOPPED

    def test_aggregates_services(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        orchestrator.start()
        engine.set_services("demo", {"web": "running", "db": "running"})
        report = orchestrator.status()
        assert report.status is StackStatus.RUNNING
        assert set(report.services) == {"web", "db"}
        assert orchestrator.state.get_one("demo").runtime_status is StackStatus.RUNNING

    def test_no_containers(self, orchestrator: LifecycleOrchestrator):
        orchestrator.build()
        assert orchestrator.status().status is StackStatus.NOT_CREATED

    def test_service_error_keeps_last_error(
        self, orchestrator: LifecycleOrchestrator, engine: MockEngine
    ):
        orchestrator.build()
        orchestrator.state.update("demo", last_error="previous failure")
        engine.set_services("demo", {"web": "error", "db": "running"})
        assert orchestrator.status().status is StackStatus.ERROR
        assert orchestrator.state.get_one("demo").last_error == "previous failure"

    def test_healthy_clears_last_error(
        self, orchestrator: LifecycleOrchestrator, engine: MockEngine
    ):
        orchestrator.build()
        orchestrator.state.update("demo", last_error="previous failure")
        engine.set_services("demo", {"web": "stopped"})
        orchestrator.status()
        assert orchestrator.state.get_one("demo").last_error is None

    def test_engine_failure_never_raises(
        self, orchestrator: LifecycleOrchestrator, engine: MockEngine
    ):
        orchestrator.build()
        engine.set_failure("get_stack_status", "podman not responding")
        report = orchestrator.status()
        assert report.status is StackStatus.ERROR
        assert report.error == "Status check failed: podman not responding"

        record = orchestrator.state.get_one("demo")
        assert record.runtime_status is StackStatus.UNKNOWN
        assert record.last_error == "Status check failed: podman not responding"

    def test_report_to_dict(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        orchestrator.build()
        engine.set_services("demo", {"web": "running"})
        data = orchestrator.status().to_dict()
        assert data["status"] == "running"
        assert data["services"]["web"]["status"] == "running"


# ── Resolution ───────────────────────────────────────────────────────


class TestResolution:
    def test_no_default_configured(self, state_store: StateStore, project_dir: Path):
        orchestrator = LifecycleOrchestrator(
            registry=bootstrap_plugins(mock_plugins()),
            state=state_store,
            global_config=GlobalConfig(default_builder=None, default_engine=None),
            search_dir=project_dir,
        )
        with pytest.raises(NoDefaultConfiguredError):
            orchestrator.build()

    def test_global_config_loaded_lazily(self, devx_home: Path, project_dir: Path, monkeypatch):
        monkeypatch.setenv("DEVX_DEFAULT_BUILDER", "mock-builder")
        monkeypatch.setenv("DEVX_DEFAULT_ENGINE", "mock-engine")
        orchestrator = LifecycleOrchestrator(
            registry=bootstrap_plugins(mock_plugins()),
            search_dir=project_dir,
        )
        assert orchestrator.build().build_status is BuildStatus.BUILT
        assert orchestrator.state.path == devx_home / "state.json"


# ── End to end ───────────────────────────────────────────────────────


class TestLifecycleEndToEnd:
    def test_build_start_stop_by_name(
        self, orchestrator: LifecycleOrchestrator, project_dir: Path
    ):
        (project_dir / ".stack.yml").write_text(
            "name: demo\nservices:\n  web:\n    image: nginx\n"
        )
        orchestrator.load()  # records demo → path, so the name resolves

        built = orchestrator.build("demo")
        assert built.build_status is BuildStatus.BUILT
        assert built.last_error is None

        assert orchestrator.start("demo").runtime_status is StackStatus.RUNNING

        stopped = orchestrator.stop("demo")
        assert stopped.runtime_status is StackStatus.STOPPED
        assert stopped.last_started_at is None

    def test_status_of_unbuilt_stack(self, orchestrator: LifecycleOrchestrator, engine: MockEngine):
        assert orchestrator.status().status is StackStatus.STOPPED
        assert engine.calls_for("get_stack_status") == []

    def test_list_states(self, orchestrator: LifecycleOrchestrator):
        orchestrator.build()
        assert [s.name for s in orchestrator.list_states()] == ["demo"]
