import pytest
from pydantic import ValidationError as SettingsValidationError

from capability_adapter.adapter import CapabilityAdapter
from capability_adapter.config import Settings

from .helpers import LIST_ITEMS, StubTransport


def test_settings_reject_unknown_environments():
    with pytest.raises(SettingsValidationError):
        Settings(_env_file=None, SYNC_TARGET_ENV="staging")
    with pytest.raises(SettingsValidationError):
        Settings(_env_file=None, SYNC_SOURCE_ENV="prod")
    with pytest.raises(SettingsValidationError):
        Settings(_env_file=None, TRACKED_ENVIRONMENTS=["sandbox", "staging"])


def test_settings_normalize_environment_names():
    s = Settings(_env_file=None, SYNC_SOURCE_ENV=" Sandbox ", TRACKED_ENVIRONMENTS=["EXTERNAL"])
    assert s.SYNC_SOURCE_ENV == "sandbox"
    assert s.TRACKED_ENVIRONMENTS == ["external"]


def test_tracker_lookup(test_settings, clock):
    stub = StubTransport([LIST_ITEMS])
    adapter = CapabilityAdapter(test_settings, transport_factory=lambda env: stub, clock=clock)
    assert adapter.tracker() is adapter.tracker("sandbox")
    assert adapter.tracker() is not None
    assert adapter.tracker("production") is None
    assert adapter.tracker("staging") is None
