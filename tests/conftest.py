"""Shared pytest fixtures for the take recorder test suite."""

from pathlib import Path

import pytest

from take_recorder.config import AudioConfig, OutputFormat, SessionConfig
from take_recorder.core.session import RecordingSession
from take_recorder.core.states import SessionState
from tests.helpers import (
    SAMPLE_RATE,
    FakePlayer,
    FakeRecorder,
    FakeRouter,
    FakeTickerFactory,
    RecordingObserver,
)


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    return tmp_path / "recordings"


@pytest.fixture
def config(storage_dir: Path) -> SessionConfig:
    return SessionConfig(
        output_format=OutputFormat.WAV,
        storage_dir=storage_dir,
        audio=AudioConfig(sample_rate=SAMPLE_RATE, channels=1),
    )


@pytest.fixture
def recorder() -> FakeRecorder:
    return FakeRecorder()


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def router() -> FakeRouter:
    return FakeRouter()


@pytest.fixture
def tickers() -> FakeTickerFactory:
    return FakeTickerFactory()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def make_session(config, recorder, player, router, tickers, observer):
    """Build sessions wired to the fakes; extra kwargs override them."""
    created: list[RecordingSession] = []

    def factory(**overrides) -> RecordingSession:
        kwargs = {
            "recorder": recorder,
            "player": player,
            "router": router,
            "observers": [observer],
            "ticker_factory": tickers,
        }
        session_config = overrides.pop("config", config)
        kwargs.update(overrides)
        session = RecordingSession(session_config, **kwargs)
        created.append(session)
        return session

    yield factory

    for session in created:
        if session.state is not SessionState.SAVED:
            session.close(timeout=5.0)


@pytest.fixture
def session(make_session) -> RecordingSession:
    return make_session()
