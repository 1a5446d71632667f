"""Tests for wrapper handle discovery."""

import json
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import psutil
import pytest

from hookparty.delivery.wrapper import (
    handle_path_for,
    is_process_alive,
    load_wrapper_handle,
    write_wrapper_handle,
)

pytestmark = pytest.mark.unit


class TestIsProcessAlive:
    def test_current_process(self):
        assert is_process_alive(os.getpid()) is True

    def test_missing_process(self):
        with patch("psutil.Process", side_effect=psutil.NoSuchProcess(12345)):
            assert is_process_alive(12345) is False

    def test_zombie_counts_as_dead(self):
        proc = MagicMock()
        proc.status.return_value = psutil.STATUS_ZOMBIE
        with patch("psutil.Process", return_value=proc):
            assert is_process_alive(12345) is False


class TestHandles:
    def test_template_expansion(self):
        assert handle_path_for("/run/{session_id}.json", "abc") == Path("/run/abc.json")
        assert handle_path_for("/run/wrapper.json", "abc") == Path("/run/wrapper.json")

    def test_write_then_load(self, temp_dir: Path):
        path = temp_dir / "wrappers" / "s1.json"
        written = write_wrapper_handle(path, port=41000)

        assert json.loads(path.read_text()) == {"port": 41000, "pid": os.getpid()}
        loaded = load_wrapper_handle(path)
        assert loaded == written
        assert loaded.input_url == "http://127.0.0.1:41000/input"

    def test_missing_file(self, temp_dir: Path):
        assert load_wrapper_handle(temp_dir / "none.json") is None

    def test_incomplete_handle(self, temp_dir: Path):
        path = temp_dir / "h.json"
        path.write_text('{"port": 1}')

        assert load_wrapper_handle(path) is None
        assert path.exists()

    def test_dead_process_deletes_handle(self, temp_dir: Path):
        path = write_wrapper_handle(temp_dir / "h.json", port=41000, pid=4242).path

        with patch("hookparty.delivery.wrapper.is_process_alive", return_value=False):
            assert load_wrapper_handle(path) is None

        assert not path.exists()

    @pytest.mark.parametrize("port", [0, -1, 65536, 99999])
    def test_out_of_range_port_is_ignored(self, temp_dir: Path, port: int):
        path = write_wrapper_handle(temp_dir / "h.json", port=port).path

        assert load_wrapper_handle(path) is None

    def test_non_positive_pid_is_ignored(self, temp_dir: Path):
        path = write_wrapper_handle(temp_dir / "h.json", port=41000, pid=0).path

        assert load_wrapper_handle(path) is None
