"""Shared fixtures for hub, poller and session tests."""

from __future__ import annotations

import itertools

import pytest

from confsync.schemas import BallConfig, FeatureConfig

GREEN_BALLS = {
    "ball_color": "green",
    "ball_size": 20,
    "ball_speed": 3,
    "number_of_balls": 10,
}

RED_BALLS = {
    "ball_color": "red",
    "ball_size": 40,
    "ball_speed": 1,
    "number_of_balls": 5,
}

FEATURE_ON = {
    "feature_flag": True,
    "logging_level": "debug",
    "maintenance_mode": False,
    "api_rate_limit": 100,
}


class FakeSession:
    """Hub-side stand-in for a ClientSession."""

    _ids = itertools.count(1000)

    def __init__(self, *, fail: bool = False) -> None:
        self.session_id = next(self._ids)
        self.received: list = []
        self.fail = fail

    def deliver(self, config) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.received.append(config)


@pytest.fixture
def green() -> BallConfig:
    return BallConfig(**GREEN_BALLS)


@pytest.fixture
def red() -> BallConfig:
    return BallConfig(**RED_BALLS)


@pytest.fixture
def feature_on() -> FeatureConfig:
    return FeatureConfig(**FEATURE_ON)


@pytest.fixture
def make_session():
    def _make(**kwargs) -> FakeSession:
        return FakeSession(**kwargs)

    return _make
