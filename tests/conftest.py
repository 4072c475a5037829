# Ensure the repository root is on sys.path so `ticket_dispatcher` can be imported in tests.

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    here = Path(__file__).resolve()
    repo_str = str(here.parent.parent)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()


@pytest.fixture
def store(tmp_path):
    from ticket_dispatcher.queue import JobStore

    return JobStore(tmp_path / "queue")


@pytest.fixture
def tracker(store):
    from ticket_dispatcher.queue import QueueTracker

    return QueueTracker(store)


@pytest.fixture
def manager(store, tracker):
    from ticket_dispatcher.queue import QueueManager

    return QueueManager(store, tracker)


@pytest.fixture
def app_factory(tmp_path, monkeypatch):
    """
    Build an app whose queue, templates and config live under tmp_path.
    The scheduler is not started; tests drive the drain loop directly.
    """
    from ticket_dispatcher import create_app
    from ticket_dispatcher.core.config import save_config

    config_path = tmp_path / "config.json"
    monkeypatch.setenv("TICKETDISPATCH_DATA_PATH", str(tmp_path / "data"))
    monkeypatch.setenv("TICKETDISPATCH_CONFIG_PATH", str(config_path))
    save_config({"printer_ip": "192.168.1.50", "inter_job_delay_seconds": 0}, path=str(config_path))

    def _make(render=None, **overrides):
        app = create_app(
            config_overrides={"TESTING": True, **overrides},
            register_worker=False,
            render=render or (lambda cfg, payload: True),
        )
        return app

    return _make
