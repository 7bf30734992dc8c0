"""
Unit tests for environment-driven settings.
"""
import pytest

from docharness.config import Settings
from docharness.models.instance import InstanceBackend
from docharness.models.query import WriteConcernLevel


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DATABASE_NAME", "COLLECTION_NAME", "BACKEND", "MONGODB_PORT", "WRITE_CONCERN"):
        monkeypatch.delenv(f"DOCHARNESS_{name}", raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.database_name == "paymentDB"
    assert settings.collection_name == "dados"
    assert settings.mongodb_port == 27117
    assert settings.mongodb_host == "127.0.0.1"
    assert settings.backend == InstanceBackend.DOCKER
    assert settings.write_concern == WriteConcernLevel.MAJORITY
    assert settings.write_concern_journal is True


def test_names_overridable_from_environment(monkeypatch):
    """Test: the same suite can target another data set without code changes."""
    monkeypatch.setenv("DOCHARNESS_DATABASE_NAME", "ledger")
    monkeypatch.setenv("DOCHARNESS_COLLECTION_NAME", "entries")

    settings = Settings(_env_file=None)

    assert settings.database_name == "ledger"
    assert settings.collection_name == "entries"


def test_backend_and_durability_from_environment(monkeypatch):
    monkeypatch.setenv("DOCHARNESS_BACKEND", "external")
    monkeypatch.setenv("DOCHARNESS_WRITE_CONCERN", "w1")
    monkeypatch.setenv("DOCHARNESS_MONGODB_PORT", "27300")

    settings = Settings(_env_file=None)

    assert settings.backend == InstanceBackend.EXTERNAL
    assert settings.write_concern == WriteConcernLevel.W1
    assert settings.mongodb_port == 27300


def test_prefix_is_case_insensitive(monkeypatch):
    monkeypatch.setenv("docharness_database_name", "lower")

    assert Settings(_env_file=None).database_name == "lower"
