import typing

import hikari
import msgpack  # type: ignore

from .types import SNAPSHOT_VERSION, Snapshot

REQUIRED_KEYS: typing.Final = ("metadata", "guild", "roles", "channels", "emojis")


def encode_permissions(permissions: int) -> str:
    # decimal text, JSON numbers lose bits above 2**53
    return str(int(permissions))


def decode_permissions(raw: str | int) -> hikari.Permissions:
    return hikari.Permissions(int(raw))


def encode_snapshot(snapshot: Snapshot) -> bytes:
    return typing.cast(bytes, msgpack.packb(snapshot))


def decode_snapshot(data: bytes) -> Snapshot:
    snapshot = msgpack.unpackb(data)
    if not isinstance(snapshot, dict):
        raise ValueError("snapshot is not a mapping")

    missing = [key for key in REQUIRED_KEYS if key not in snapshot]
    if missing:
        raise ValueError(f"snapshot is missing keys: {', '.join(missing)}")

    version = snapshot["metadata"].get("version")
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version: {version!r}")

    return typing.cast(Snapshot, snapshot)
