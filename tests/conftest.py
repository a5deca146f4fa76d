"""
Shared test fixtures and configuration.
"""

import logging
import textwrap
from pathlib import Path

import pytest

from devx.adapters.mock import MockBuilder, MockEngine, mock_plugins
from devx.adapters.registry import bootstrap_plugins
from devx.core.config.global_config import GlobalConfig
from devx.core.config.metadata import MetadataStore
from devx.core.context import set_devx_home
from devx.core.engine.orchestrator import LifecycleOrchestrator
from devx.core.persistence.state_file import StateStore

DEMO_STACK = textwrap.dedent("""\
    name: demo
    services:
      web:
        image: nginx:alpine
        ports:
          - "8080:80"
      db:
        image: postgres:16
        environment:
          POSTGRES_PASSWORD: secret
""")


@pytest.fixture(autouse=True)
def devx_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Every test gets its own devx home; nothing touches ~/.devx."""
    home = tmp_path / "devx-home"
    monkeypatch.setenv("DEVX_HOME", str(home))
    for name in (
        "DEVX_STATE_DIR",
        "DEVX_DEFAULT_BUILDER",
        "DEVX_DEFAULT_ENGINE",
        "DEVX_LOG_LEVEL",
        "DEVX_LOG_FILE",
        "DEVX_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    set_devx_home(home)
    yield home
    set_devx_home(None)


@pytest.fixture(autouse=True)
def restore_logging():
    """setup_logging() reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    level = root.level
    raise_exceptions = logging.raiseExceptions
    yield
    for handler in list(root.handlers):
        if isinstance(handler, (logging.StreamHandler, logging.FileHandler)):
            root.removeHandler(handler)
            if isinstance(handler, logging.FileHandler):
                handler.close()
    root.setLevel(level)
    logging.raiseExceptions = raise_exceptions


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project directory containing the demo .stack.yml."""
    project = tmp_path / "project"
    project.mkdir()
    (project / ".stack.yml").write_text(DEMO_STACK)
    return project


@pytest.fixture
def builder() -> MockBuilder:
    return MockBuilder()


@pytest.fixture
def engine() -> MockEngine:
    return MockEngine()


@pytest.fixture
def state_store(devx_home: Path) -> StateStore:
    return StateStore(devx_home / "state.json")


@pytest.fixture
def orchestrator(
    builder: MockBuilder,
    engine: MockEngine,
    state_store: StateStore,
    devx_home: Path,
    project_dir: Path,
) -> LifecycleOrchestrator:
    """Orchestrator wired to mock plugins, defaulting to them for every stack."""
    return LifecycleOrchestrator(
        registry=bootstrap_plugins(mock_plugins(builder, engine)),
        state=state_store,
        global_config=GlobalConfig(default_builder=builder.name, default_engine=engine.name),
        metadata=MetadataStore(devx_home / "stacks"),
        search_dir=project_dir,
    )
