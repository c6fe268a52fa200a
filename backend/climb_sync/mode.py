"""Runtime mode resolution (restricted demo/offline vs. full connectivity)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal, Optional

from .config import Settings, load_settings

DEMO_API_KEY = "demo-api-key"


class Mode(str, Enum):
    RESTRICTED = "restricted"
    FULL = "full"


@dataclass(frozen=True)
class EnvironmentInfo:
    mode: Mode
    demo_mode: bool
    ai_enabled: bool
    remote_writes_enabled: bool
    persistence_target: Literal["remote", "local"]


class ModeResolver:
    """Decides whether remote calls are attempted at all.

    Settings are re-read on every call so that environment toggles take
    effect without a restart.
    """

    def __init__(self, settings_loader: Callable[[], Settings] = load_settings) -> None:
        self._settings_loader = settings_loader
        self._override: Optional[Mode] = None

    def force_restricted(self) -> None:
        self._override = Mode.RESTRICTED

    def force_full(self) -> None:
        self._override = Mode.FULL

    def reset(self) -> None:
        self._override = None

    def resolve(self) -> Mode:
        return self.describe().mode

    def is_restricted(self) -> bool:
        return self.resolve() is Mode.RESTRICTED

    def describe(self) -> EnvironmentInfo:
        settings = self._settings_loader()
        demo = _is_demo(settings)
        writes_enabled = settings.remote_writes_enabled
        if self._override is not None:
            mode = self._override
        elif demo or not writes_enabled:
            mode = Mode.RESTRICTED
        else:
            mode = Mode.FULL
        return EnvironmentInfo(
            mode=mode,
            demo_mode=demo,
            ai_enabled=settings.enable_ai_features and not demo,
            remote_writes_enabled=writes_enabled,
            persistence_target="local" if mode is Mode.RESTRICTED else "remote",
        )


def _is_demo(settings: Settings) -> bool:
    if settings.demo_mode is not None:
        return settings.demo_mode
    return (
        settings.use_mock_ai
        or not settings.enable_ai_features
        or settings.use_emulator
        or settings.api_key == DEMO_API_KEY
    )


__all__ = ["EnvironmentInfo", "Mode", "ModeResolver"]
