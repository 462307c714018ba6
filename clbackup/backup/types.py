from __future__ import annotations

import enum
import typing

SNAPSHOT_VERSION: typing.Final = "1.0.0"
EVERYONE_ROLE_NAME: typing.Final = "@everyone"


class ChannelKind(str, enum.Enum):
    CATEGORY = "category"
    TEXT = "text"
    VOICE = "voice"
    ANNOUNCEMENT = "announcement"
    STAGE = "stage"
    FORUM = "forum"
    OTHER = "other"


class Snapshot(typing.TypedDict):
    metadata: SnapshotMetadata
    guild: SnapshotGuild
    roles: list[SnapshotRole]
    channels: list[SnapshotChannel]
    emojis: list[SnapshotEmoji]


class SnapshotMetadata(typing.TypedDict):
    version: str
    guild_id: str
    guild_name: str
    timestamp: str  # isoformat
    member_count: int | None


class SnapshotGuild(typing.TypedDict):
    name: str
    description: str | None
    icon: str | None
    banner: str | None
    splash: str | None
    verification_level: int
    default_message_notifications: int
    explicit_content_filter: int
    afk_timeout: int
    system_channel_flags: int
    preferred_locale: str
    features: list[str]


class SnapshotRole(typing.TypedDict):
    name: str
    color: int
    hoist: bool
    position: int
    permissions: str  # decimal string
    mentionable: bool
    icon: str | None
    unicode_emoji: str | None


OverwriteType = typing.Literal["role", "member"]


class SnapshotOverwrite(typing.TypedDict):
    id: str
    type: OverwriteType
    role_name: str | None
    allow: str
    deny: str


class _SnapshotChannelBase(typing.TypedDict):
    name: str
    type: int
    kind: str
    position: int
    category: bool
    parent: str | None
    permission_overwrites: list[SnapshotOverwrite]


class SnapshotChannel(_SnapshotChannelBase, total=False):
    # only present where the channel kind defines them
    topic: str
    nsfw: bool
    rate_limit_per_user: int  # seconds
    bitrate: int
    user_limit: int
    rtc_region: str
    default_auto_archive_duration: int  # minutes


SnapshotChannelOptionalKeys = typing.Literal[
    "topic",
    "nsfw",
    "rate_limit_per_user",
    "bitrate",
    "user_limit",
    "rtc_region",
    "default_auto_archive_duration",
]


class SnapshotEmoji(typing.TypedDict):
    name: str
    url: str
    animated: bool
    roles: list[str]
