# -*- coding: utf-8 -*-
"""
tests.property package bootstrap.

Registers the Hypothesis profiles used by the property suites and picks one:
HYPOTHESIS_PROFILE if set, otherwise "ci" under CI (CI env var truthy) and
"dev" locally.

Environment knobs:
- HYPOTHESIS_PROFILE=dev|ci|fast
- CI=true

Per-test overrides go on the test with @settings(...).
"""
from __future__ import annotations

import os
from typing import Final

from hypothesis import HealthCheck, Verbosity, settings
from hypothesis import strategies as st

# Store operations hit the filesystem; deadlines only add flakiness.
settings.register_profile(
    "dev",
    settings(
        max_examples=50,
        deadline=None,
        suppress_health_check=(HealthCheck.too_slow,),
        verbosity=Verbosity.normal,
    ),
)

settings.register_profile(
    "ci",
    settings(
        max_examples=150,
        deadline=None,
        suppress_health_check=(HealthCheck.too_slow, HealthCheck.data_too_large),
        verbosity=Verbosity.verbose,
        derandomize=True,
    ),
)

settings.register_profile(
    "fast",
    settings(max_examples=15, deadline=None, suppress_health_check=(HealthCheck.too_slow,)),
)


def _env_truthy(name: str) -> bool:
    v = os.getenv(name)
    return (v or "").lower() not in ("", "0", "false", "no", "off")


_active: Final[str] = os.getenv("HYPOTHESIS_PROFILE") or ("ci" if _env_truthy("CI") else "dev")
settings.load_profile(_active)


def active_profile() -> str:
    return _active


def store_keys(alphabet: str = "abcdeé", max_size: int = 6):
    """Short non-empty string keys from a small alphabet, so operations collide."""
    return st.text(alphabet=alphabet, min_size=1, max_size=max_size)


__all__ = ["active_profile", "store_keys"]
