"""Pytest configuration and shared fixtures for hookparty tests."""

import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from hookparty.config.app import PartyConfig
from hookparty.delivery.input import InputDeliveryChannel
from hookparty.sessions.registry import SessionRegistry
from hookparty.sessions.resolver import SessionResolver
from hookparty.utils.timers import ManualScheduler


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def default_config(temp_dir: Path) -> PartyConfig:
    """Create a PartyConfig whose file paths all live in temp_dir."""
    return PartyConfig(
        logging={"log_file": str(temp_dir / "logs" / "hookparty.log")},
        sessions={"resolve_slugs": False},
        input_delivery={
            "drop_box_dir": str(temp_dir / "inputs"),
            "wrapper_handle_path": str(temp_dir / "wrappers" / "{session_id}.json"),
        },
        notifications={"desktop_enabled": False},
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Scheduler driven by advance() instead of wall-clock time."""
    return ManualScheduler()


@pytest.fixture
def clock() -> Iterator[list[int]]:
    """Mutable millisecond clock; set clock[0] to move time."""
    yield [1_000]


@pytest.fixture
def registry(scheduler: ManualScheduler, clock: list[int]) -> SessionRegistry:
    """Registry with a manual scheduler and controllable clock."""
    return SessionRegistry(end_grace_seconds=30.0, scheduler=scheduler, clock=lambda: clock[0])


@pytest.fixture
def resolver(registry: SessionRegistry) -> SessionResolver:
    return SessionResolver(registry)


@pytest.fixture
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture
def delivery(temp_dir: Path, recorded_sleeps: list[float]) -> InputDeliveryChannel:
    """Delivery channel rooted in temp_dir that records instead of sleeping."""

    async def fake_sleep(delay: float) -> None:
        recorded_sleeps.append(delay)

    return InputDeliveryChannel(
        drop_box_dir=temp_dir / "inputs",
        wrapper_handle_path=str(temp_dir / "wrappers" / "{session_id}.json"),
        sleep=fake_sleep,
    )
