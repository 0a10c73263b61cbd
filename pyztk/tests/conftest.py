"""Configuration for pytest."""

import pytest

from pyztk.config import Config
from pyztk.github import GitHubClient
from pyztk.tests.fake_pygithub import FakeGithub, FakeRepository
from pyztk.tests.utils import make_config


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def fake_github() -> FakeGithub:
    return FakeGithub("acme", "widgets")


@pytest.fixture
def fake_repo(fake_github: FakeGithub) -> FakeRepository:
    return fake_github.repo


@pytest.fixture
def github(config: Config, fake_github: FakeGithub) -> GitHubClient:
    return GitHubClient(config, fake_github)
