from __future__ import annotations

import pytest
from pydantic import ValidationError

from tourguide.config.overrides import apply_settings_overrides
from tourguide.config.settings import get_settings


def test_apply_settings_overrides_returns_same_object_when_none():
    settings = get_settings()

    # No payload is a fast path; the cached model comes back untouched.
    assert apply_settings_overrides(settings, None) is settings
    assert apply_settings_overrides(settings, {}) is settings


def test_apply_settings_overrides_can_override_allowed_knobs():
    settings = get_settings()

    out = apply_settings_overrides(
        settings,
        {"proximity": {"threshold_m": 500}, "conversation": {"history_limit": 6}},
    )

    assert out.proximity.threshold_m == 500
    assert out.conversation.history_limit == 6
    # Untouched siblings survive the merge.
    assert out.proximity.cooldown_seconds == settings.proximity.cooldown_seconds
    # The shared settings stay as they were.
    assert settings.proximity.threshold_m != 500


def test_apply_settings_overrides_rejects_secrets_with_clear_path():
    settings = get_settings()

    with pytest.raises(ValueError, match=r"disallowed key: 'llm'"):
        apply_settings_overrides(settings, {"llm": {"api_key": "x"}})

    with pytest.raises(ValueError, match=r"proximity\.tracking_interval_seconds"):
        apply_settings_overrides(settings, {"proximity": {"tracking_interval_seconds": 1}})


def test_apply_settings_overrides_rejects_wrong_value_shapes_for_restricted_subtrees():
    with pytest.raises(ValueError, match=r"settings_overrides key 'proximity' must be a mapping"):
        apply_settings_overrides(get_settings(), {"proximity": 1})


def test_apply_settings_overrides_revalidates_ranges():
    with pytest.raises(ValidationError):
        apply_settings_overrides(get_settings(), {"proximity": {"threshold_m": -5}})
