from __future__ import annotations

import logging
import typing
from datetime import datetime, timedelta, timezone

import hikari

from .codec import encode_permissions
from .types import (
    EVERYONE_ROLE_NAME,
    SNAPSHOT_VERSION,
    ChannelKind,
    Snapshot,
    SnapshotChannel,
    SnapshotEmoji,
    SnapshotGuild,
    SnapshotOverwrite,
    SnapshotRole,
)

logger = logging.getLogger(__name__)

CHANNEL_KINDS: typing.Final[dict[int, ChannelKind]] = {
    int(hikari.ChannelType.GUILD_CATEGORY): ChannelKind.CATEGORY,
    int(hikari.ChannelType.GUILD_TEXT): ChannelKind.TEXT,
    int(hikari.ChannelType.GUILD_VOICE): ChannelKind.VOICE,
    int(hikari.ChannelType.GUILD_NEWS): ChannelKind.ANNOUNCEMENT,
    int(hikari.ChannelType.GUILD_STAGE): ChannelKind.STAGE,
    int(hikari.ChannelType.GUILD_FORUM): ChannelKind.FORUM,
}
# (snapshot key, channel attribute)
TEXT_FIELDS: typing.Final = (
    ("topic", "topic"),
    ("nsfw", "is_nsfw"),
    ("rate_limit_per_user", "rate_limit_per_user"),
    ("default_auto_archive_duration", "default_auto_archive_duration"),
)
ANNOUNCEMENT_FIELDS: typing.Final = (
    ("topic", "topic"),
    ("nsfw", "is_nsfw"),
    ("default_auto_archive_duration", "default_auto_archive_duration"),
)
VOICE_FIELDS: typing.Final = (
    ("bitrate", "bitrate"),
    ("user_limit", "user_limit"),
    ("rtc_region", "region"),
)
KIND_FIELDS: typing.Final[dict[ChannelKind, tuple[tuple[str, str], ...]]] = {
    ChannelKind.CATEGORY: (),
    ChannelKind.TEXT: TEXT_FIELDS,
    ChannelKind.ANNOUNCEMENT: ANNOUNCEMENT_FIELDS,
    ChannelKind.VOICE: VOICE_FIELDS,
    ChannelKind.STAGE: VOICE_FIELDS,
    ChannelKind.FORUM: TEXT_FIELDS,
    ChannelKind.OTHER: (),
}


def channel_kind(channel_type: int) -> ChannelKind:
    return CHANNEL_KINDS.get(int(channel_type), ChannelKind.OTHER)


def _plain(value: typing.Any) -> typing.Any:
    # hikari enums and durations -> msgpack friendly values
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    if isinstance(value, bool):
        return value
    value = getattr(value, "value", value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str):
        return str(value)
    return value


def _minutes(value: typing.Any) -> int:
    # thread archive durations go over the wire in minutes
    if isinstance(value, timedelta):
        return round(value.total_seconds() / 60)
    return int(value)


CONVERTERS: typing.Final[dict[str, typing.Callable[[typing.Any], typing.Any]]] = {
    "default_auto_archive_duration": _minutes,
}


def _url(url: typing.Any) -> str | None:
    return None if url is None else str(url)


async def capture(
    rest: hikari.api.RESTClient, guild: hikari.SnowflakeishOr[hikari.PartialGuild]
) -> Snapshot:
    """Read the structure of ``guild`` into a :class:`Snapshot`.

    This never writes to the guild. Errors are not caught: a failure to read
    any collection aborts the capture, since a partial snapshot would later
    restore as a smaller server without anyone noticing.
    """
    guild_id = hikari.Snowflake(int(guild))
    live_guild = await rest.fetch_guild(guild_id)
    roles = await rest.fetch_roles(guild_id)
    channels = await rest.fetch_guild_channels(guild_id)
    emojis = await rest.fetch_guild_emojis(guild_id)

    logger.info(f"creating snapshot for {live_guild.name} ({guild_id})")

    role_names = {role.id: role.name for role in roles}
    role_names[guild_id] = EVERYONE_ROLE_NAME
    channel_names = {channel.id: channel.name for channel in channels}

    snapshot: Snapshot = {
        "metadata": {
            "version": SNAPSHOT_VERSION,
            "guild_id": str(guild_id),
            "guild_name": live_guild.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "member_count": getattr(live_guild, "approximate_member_count", None),
        },
        "guild": make_guild_snapshot(live_guild),
        "roles": [
            make_role_snapshot(role)
            for role in sorted(roles, key=lambda r: r.position)
            if role.id != guild_id
        ],
        "channels": [
            make_channel_snapshot(channel, role_names, channel_names)
            for channel in sorted(channels, key=lambda c: c.position or 0)
        ],
        "emojis": [make_emoji_snapshot(emoji, role_names) for emoji in emojis],
    }

    logger.info(
        f"created snapshot for {guild_id}: {len(snapshot['roles'])} roles, "
        f"{len(snapshot['channels'])} channels, {len(snapshot['emojis'])} emojis"
    )
    return snapshot


def make_guild_snapshot(guild: hikari.Guild) -> SnapshotGuild:
    return {
        "name": guild.name,
        "description": guild.description,
        "icon": _url(guild.icon_url),
        "banner": _url(guild.banner_url),
        "splash": _url(guild.splash_url),
        "verification_level": int(guild.verification_level),
        "default_message_notifications": int(guild.default_message_notifications),
        "explicit_content_filter": int(guild.explicit_content_filter),
        "afk_timeout": _plain(guild.afk_timeout),
        "system_channel_flags": int(guild.system_channel_flags),
        "preferred_locale": _plain(guild.preferred_locale),
        "features": [_plain(feature) for feature in guild.features],
    }


def make_role_snapshot(role: hikari.Role) -> SnapshotRole:
    return {
        "name": role.name,
        "color": int(role.color),
        "hoist": role.is_hoisted,
        "position": role.position,
        "permissions": encode_permissions(role.permissions),
        "mentionable": role.is_mentionable,
        "icon": _url(role.icon_url),
        "unicode_emoji": (
            None if role.unicode_emoji is None else str(role.unicode_emoji)
        ),
    }


def make_overwrite_snapshot(
    overwrite: hikari.PermissionOverwrite, role_names: typing.Mapping[int, str]
) -> SnapshotOverwrite:
    is_role = overwrite.type == hikari.PermissionOverwriteType.ROLE
    return {
        "id": str(overwrite.id),
        "type": "role" if is_role else "member",
        "role_name": role_names.get(overwrite.id) if is_role else None,
        "allow": encode_permissions(overwrite.allow),
        "deny": encode_permissions(overwrite.deny),
    }


def make_channel_snapshot(
    channel: hikari.GuildChannel,
    role_names: typing.Mapping[int, str],
    channel_names: typing.Mapping[int, str | None],
) -> SnapshotChannel:
    if channel.name is None:
        raise ValueError(f"guild channel {channel.id} has no name")
    kind = channel_kind(channel.type)
    parent = None
    if channel.parent_id is not None:
        parent = channel_names.get(channel.parent_id)

    data: SnapshotChannel = {
        "name": channel.name,
        "type": int(channel.type),
        "kind": kind.value,
        "position": channel.position or 0,
        "category": kind is ChannelKind.CATEGORY,
        "parent": parent,
        "permission_overwrites": [
            make_overwrite_snapshot(overwrite, role_names)
            for overwrite in channel.permission_overwrites.values()
        ],
    }
    # optional keys are only present when the channel has a value
    extra = typing.cast(dict[str, typing.Any], data)
    for key, attribute in KIND_FIELDS[kind]:
        value = getattr(channel, attribute, None)
        if value is not None:
            extra[key] = CONVERTERS.get(key, _plain)(value)

    return data


def make_emoji_snapshot(
    emoji: hikari.KnownCustomEmoji, role_names: typing.Mapping[int, str]
) -> SnapshotEmoji:
    return {
        "name": emoji.name,
        "url": str(emoji.url),
        "animated": bool(emoji.is_animated),
        "roles": [role_names[x] for x in emoji.role_ids if x in role_names],
    }
