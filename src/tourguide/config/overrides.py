"""
Per-session settings overrides.

A UI creating a `GuideSession` may tune a few knobs (alert radius, cooldown, ranking
tables, conversation limits) without touching the process-wide settings. Overrides are
walked against a whitelist, merged onto a dump of the current settings and validated
again, so a bad value fails the same way a bad YAML file would.

Secrets, endpoints and the region box can never be overridden.
"""

from __future__ import annotations

from typing import Any, Mapping

from tourguide.config.settings import Settings

# `True` opens a whole subtree; a nested dict lists the keys allowed under it.
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "proximity": {
        "threshold_m": True,
        "cooldown_seconds": True,
        "accuracy_advisory_m": True,
        "alert_display_seconds": True,
    },
    "ranking": True,
    "conversation": {
        "history_limit": True,
        "search_result_limit": True,
        "search_radius_m": True,
        "context_top_k": True,
        "context_alert_limit": True,
    },
    "tracking": {"poll_interval_seconds": True},
}


def _merge_whitelisted(
    current: Mapping[str, Any],
    overrides: Mapping[str, Any],
    allowed: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    merged = dict(current)
    for key, value in overrides.items():
        dotted = ".".join((*path, key))
        rule = allowed.get(key)
        if rule is None:
            raise ValueError(f"settings_overrides contains a disallowed key: '{dotted}'")

        if rule is True:
            existing = merged.get(key)
            if isinstance(value, Mapping) and isinstance(existing, Mapping):
                # Open subtree: merge every nested key without further checks.
                open_rules = {k: True for k in value}
                merged[key] = _merge_whitelisted(existing, value, open_rules, (*path, key))
            else:
                merged[key] = value
            continue

        if not isinstance(value, Mapping):
            raise ValueError(f"settings_overrides key '{dotted}' must be a mapping")
        merged[key] = _merge_whitelisted(merged.get(key) or {}, value, rule, (*path, key))
    return merged


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return a new `Settings` with `overrides` applied; `settings` itself is left alone.

    Raises:
        ValueError: If a key is outside the whitelist or a restricted subtree is not a mapping.
        pydantic.ValidationError: If a merged value breaks a field constraint.
    """
    if not overrides:
        return settings
    payload = _merge_whitelisted(settings.model_dump(mode="python"), overrides, ALLOWED_SETTINGS_OVERRIDES_TREE)
    return Settings.model_validate(payload)
