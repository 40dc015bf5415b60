"""
Unit tests for the installation worker.

Tests cover:
- Ready marker as the commit point
- Entry file selection across the 5.3 layout change
- Failure reporting and retry on the next call
- Lock contention between concurrent callers
- Silent cancellation
- Recovery from locks left by crashed processes
"""

import json
import os
import threading
import time

import pytest

from tests.fixtures.store import FakeInstaller, failing_installer
from tsstore.core.cancellation import CancellationToken
from tsstore.core.exceptions import (
    InstallationError,
    InstallationTimeoutError,
    LockTimeoutError,
)
from tsstore.core.locking import Lock, get_lock_path
from tsstore.store.worker import (
    PACKAGE_FILE_NAME,
    READY_FILE_NAME,
    InstallationWorker,
    get_module_path,
)


def make_worker(store_path, installer, sink, timeout=5):
    return InstallationWorker(
        store_path, installer, sink, timeout=timeout, lock_poll_interval=0.05
    )


@pytest.fixture
def worker(store_path, fake_installer, sink):
    return make_worker(store_path, fake_installer, sink)


class TestModulePath:
    """Test entry file selection."""

    def test_new_layout(self, tmp_path):
        path = get_module_path(tmp_path / "5.4.2", "5.4.2")
        assert path == tmp_path / "5.4.2" / "node_modules" / "typescript" / "lib" / "typescript.js"

    def test_boundary_version(self, tmp_path):
        assert get_module_path(tmp_path, "5.3.0").name == "typescript.js"

    def test_old_layout(self, tmp_path):
        assert get_module_path(tmp_path, "5.2.0").name == "tsserverlibrary.js"


class TestEnsure:
    """Test InstallationWorker.ensure."""

    def test_installs_and_marks_ready(self, worker, fake_installer, sink, store_path):
        module_path = worker.ensure("5.4.2")

        installation_path = store_path / "5.4.2"
        assert module_path == get_module_path(installation_path, "5.4.2")
        assert module_path.exists()
        assert (installation_path / READY_FILE_NAME).exists()
        assert not get_lock_path(installation_path).exists()
        assert fake_installer.calls == ["5.4.2"]
        assert sink.diagnostics == []

    def test_writes_package_descriptor(self, worker, store_path):
        worker.ensure("5.2.0")

        package_json = json.loads((store_path / "5.2.0" / PACKAGE_FILE_NAME).read_text())
        assert package_json["dependencies"] == {"typescript": "5.2.0"}
        assert package_json["private"] is True

    def test_emits_info_before_install(self, worker, sink, store_path):
        worker.ensure("5.4.2")

        assert len(sink.infos) == 1
        assert sink.infos[0].compiler_version == "5.4.2"
        assert sink.infos[0].installation_path == store_path / "5.4.2"

    def test_ready_version_skips_installer(self, worker, fake_installer, sink):
        worker.ensure("5.4.2")

        module_path = worker.ensure("5.4.2")

        assert module_path is not None
        assert fake_installer.calls == ["5.4.2"]
        assert len(sink.infos) == 1

    def test_failure_reports_and_retries_next_call(self, store_path, sink):
        installer = failing_installer()
        worker = make_worker(store_path, installer, sink)

        assert worker.ensure("5.4.2") is None

        assert len(sink.errors) == 1
        assert sink.errors[0].text == [
            "Failed to install 'typescript@5.4.2'.",
            "Process exited with code 1.",
        ]
        assert isinstance(sink.errors[0].cause, InstallationError)
        assert not (store_path / "5.4.2" / READY_FILE_NAME).exists()
        assert not get_lock_path(store_path / "5.4.2").exists()

        installer.error = None
        assert worker.ensure("5.4.2") is not None
        assert installer.calls == ["5.4.2", "5.4.2"]

    def test_lock_timeout_makes_version_unavailable(self, store_path, fake_installer, sink):
        worker = make_worker(store_path, fake_installer, sink, timeout=0.3)
        store_path.mkdir(parents=True)

        with Lock(store_path / "5.4.2"):
            assert worker.ensure("5.4.2") is None

        assert fake_installer.calls == []
        assert len(sink.errors) == 1
        assert sink.errors[0].text == [
            "Failed to install 'typescript@5.4.2'.",
            "Lock wait timeout of 0.3s was exceeded.",
        ]
        assert isinstance(sink.errors[0].cause, LockTimeoutError)

    def test_waits_for_holder_then_uses_its_install(self, store_path, fake_installer, sink):
        """Test a caller that finds the path locked picks up the finished install."""
        worker = make_worker(store_path, fake_installer, sink)
        installation_path = store_path / "5.4.2"
        installation_path.mkdir(parents=True)
        lock = Lock(installation_path)

        def finish():
            (installation_path / READY_FILE_NAME).touch()
            lock.release()

        timer = threading.Timer(0.2, finish)
        timer.start()
        try:
            module_path = worker.ensure("5.4.2")
        finally:
            timer.cancel()
            lock.release()

        assert module_path == get_module_path(installation_path, "5.4.2")
        assert fake_installer.calls == []

    def test_installer_timeout_reports_and_leaves_no_marker(self, store_path, sink):
        installer = FakeInstaller(
            error=InstallationTimeoutError("Setup timeout of 30s was exceeded.")
        )
        worker = make_worker(store_path, installer, sink)

        assert worker.ensure("5.4.2") is None

        assert sink.errors[0].text == [
            "Failed to install 'typescript@5.4.2'.",
            "Setup timeout of 30s was exceeded.",
        ]
        assert isinstance(sink.errors[0].cause, InstallationTimeoutError)
        assert not (store_path / "5.4.2" / READY_FILE_NAME).exists()
        assert not get_lock_path(store_path / "5.4.2").exists()

    def test_lock_left_by_crashed_process_is_recovered(
        self, store_path, fake_installer, sink
    ):
        """Test an indicator older than the stale bound does not wedge the version."""
        worker = make_worker(store_path, fake_installer, sink, timeout=0.3)
        indicator = get_lock_path(store_path / "5.4.2")
        store_path.mkdir(parents=True)
        indicator.write_text("")
        old = time.time() - 3600
        os.utime(indicator, (old, old))

        module_path = worker.ensure("5.4.2")

        assert module_path is not None
        assert fake_installer.calls == ["5.4.2"]
        assert (store_path / "5.4.2" / READY_FILE_NAME).exists()
        assert not indicator.exists()
        assert sink.errors == []

    @pytest.mark.slow
    def test_concurrent_callers_install_once(self, store_path, sink):
        installer = FakeInstaller(delay=0.3)
        worker = make_worker(store_path, installer, sink)
        results = []

        def run():
            results.append(worker.ensure("5.4.2"))

        threads = [threading.Thread(target=run) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert installer.calls == ["5.4.2"]
        assert len(results) == 4
        assert all(result is not None for result in results)
        assert sink.diagnostics == []

    def test_cancellation_is_silent(self, store_path, sink):
        installer = FakeInstaller(delay=10)
        worker = make_worker(store_path, installer, sink)
        token = CancellationToken()
        timer = threading.Timer(0.1, token.cancel)
        timer.start()

        try:
            assert worker.ensure("5.4.2", token) is None
        finally:
            timer.cancel()

        assert sink.diagnostics == []
        assert not (store_path / "5.4.2" / READY_FILE_NAME).exists()
        assert not get_lock_path(store_path / "5.4.2").exists()

    def test_cancelled_while_waiting_for_lock(self, store_path, fake_installer, sink):
        worker = make_worker(store_path, fake_installer, sink)
        store_path.mkdir(parents=True)
        token = CancellationToken()
        token.cancel()

        with Lock(store_path / "5.4.2"):
            assert worker.ensure("5.4.2", token) is None

        assert sink.diagnostics == []
        assert fake_installer.calls == []
