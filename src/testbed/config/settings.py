"""
Run-level settings for the testbed.

:class:`TestbedSettings` gathers everything read from the environment for a
test run: the target dialect, the port override, where the config file and
support directory live, and how reset failures are handled.  Settings are
validated once and cached by :func:`get_settings`.

Two variables keep their historical unprefixed names so existing CI matrices
keep working:

* ``DIALECT``  – target dialect (``TESTBED_DIALECT`` also accepted)
* ``SEQ_PORT`` – port override for server dialects (``TESTBED_PORT`` also accepted)

Tags:
    configuration, settings, pydantic, caching, testbed
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from testbed.dialects import DEFAULT_DIALECT, DialectName, is_native_variant, resolve_dialect


class ResetPolicy(str, Enum):
    """What the runner does when a reset step fails."""

    CONTINUE = "continue"
    FAIL_FAST = "fail_fast"


class TestbedSettings(BaseSettings):
    """Testbed configuration resolved from environment and ``.env``."""

    __test__ = False  # not a pytest test class

    model_config = SettingsConfigDict(
        env_prefix="TESTBED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # ── Dialect ──────────────────────────────────────────────────
    dialect: str = Field(
        default=DEFAULT_DIALECT,
        validation_alias=AliasChoices("DIALECT", "TESTBED_DIALECT"),
        description="Target dialect name, possibly a vendor variant",
    )
    port_override: int | None = Field(
        default=None,
        validation_alias=AliasChoices("SEQ_PORT", "TESTBED_PORT"),
        description="Port used instead of the configured one",
    )

    # ── Files ────────────────────────────────────────────────────
    config_file: Path | None = Field(default=None, description="Per-dialect TOML config")
    support_dir: Path | None = Field(default=None, description="Support directory (tmp files)")
    project_root: Path | None = Field(default=None)

    # ── Reset ────────────────────────────────────────────────────
    reset_policy: ResetPolicy = Field(default=ResetPolicy.CONTINUE)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="console")

    # ── Display ──────────────────────────────────────────────────
    teaser_subject: str = Field(default="lib/sqlalchemy")

    @property
    def resolved_dialect(self) -> DialectName:
        """Normalized dialect; raises ``UnsupportedDialectError`` when unknown."""
        return resolve_dialect(self.dialect)

    @property
    def native(self) -> bool:
        """True when the vendor variant (``postgres-native``) was requested."""
        return is_native_variant(self.dialect)

    @property
    def fail_fast(self) -> bool:
        return self.reset_policy is ResetPolicy.FAIL_FAST


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, TestbedSettings] = {}


def get_settings(*, project_root: Path | None = None, _force_reload: bool = False) -> TestbedSettings:
    """Load, validate, and cache a :class:`TestbedSettings` instance.

    Parameters
    ----------
    project_root:
        Override the auto-detected project root; ``.env`` is read from there.
    _force_reload:
        Bypass cache and reload from the environment.
    """
    from .loader import find_project_root

    root = (project_root or find_project_root()).resolve()
    cache_key = str(root)

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    env_file = root / ".env"
    settings = TestbedSettings(
        _env_file=env_file if env_file.is_file() else None,  # type: ignore[call-arg]
    )
    if settings.project_root is None:
        settings = settings.model_copy(update={"project_root": root})

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "ResetPolicy",
    "TestbedSettings",
    "get_settings",
    "clear_settings_cache",
]
