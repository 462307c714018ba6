from __future__ import annotations

import os
import typing


class BackupConfig(typing.NamedTuple):
    delete_delay: float = 0.1
    create_delay: float = 0.2
    emoji_delay: float = 0.3
    asset_timeout: float = 30
    user_agent: str = "CleanerBot Backup (cleanerbot.xyz 0.1.0)"
    reason: str = "Restoring server backup"

    @classmethod
    def from_env(cls) -> BackupConfig:
        defaults = cls()
        return cls(
            delete_delay=_float_env("BACKUP_DELETE_DELAY", defaults.delete_delay),
            create_delay=_float_env("BACKUP_CREATE_DELAY", defaults.create_delay),
            emoji_delay=_float_env("BACKUP_EMOJI_DELAY", defaults.emoji_delay),
            asset_timeout=_float_env("BACKUP_ASSET_TIMEOUT", defaults.asset_timeout),
        )

    def intervals(self) -> dict[str, float]:
        return {
            "delete": self.delete_delay,
            "create": self.create_delay,
            "emoji": self.emoji_delay,
        }


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise RuntimeError(f"invalid value for {name}: {value!r}") from None
