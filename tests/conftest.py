from __future__ import annotations

import itertools
import typing
from datetime import timedelta
from types import SimpleNamespace

import hikari
import pytest

GUILD_ID = 100
BOT_ID = 200
BOT_ROLE_ID = 201


def make_role(
    id: int,
    name: str,
    position: int,
    *,
    permissions: int = 0,
    color: int = 0,
    managed: bool = False,
) -> SimpleNamespace:
    return SimpleNamespace(
        id=hikari.Snowflake(id),
        name=name,
        position=position,
        permissions=hikari.Permissions(permissions),
        color=hikari.Color(color),
        is_hoisted=False,
        is_mentionable=False,
        is_managed=managed,
        icon_url=None,
        unicode_emoji=None,
    )


def make_overwrite(
    id: int, *, member: bool = False, allow: int = 0, deny: int = 0
) -> SimpleNamespace:
    return SimpleNamespace(
        id=hikari.Snowflake(id),
        type=(
            hikari.PermissionOverwriteType.MEMBER
            if member
            else hikari.PermissionOverwriteType.ROLE
        ),
        allow=hikari.Permissions(allow),
        deny=hikari.Permissions(deny),
    )


def make_channel(
    id: int,
    name: str,
    type: int,
    position: int,
    *,
    parent_id: int | None = None,
    overwrites: typing.Iterable[typing.Any] = (),
    **attributes: typing.Any,
) -> SimpleNamespace:
    return SimpleNamespace(
        id=hikari.Snowflake(id),
        name=name,
        type=type,
        position=position,
        parent_id=None if parent_id is None else hikari.Snowflake(parent_id),
        permission_overwrites={x.id: x for x in overwrites},
        **attributes,
    )


def make_guild(**attributes: typing.Any) -> SimpleNamespace:
    defaults: dict[str, typing.Any] = {
        "id": hikari.Snowflake(GUILD_ID),
        "name": "Test Guild",
        "description": "a guild for tests",
        "icon_url": None,
        "banner_url": None,
        "splash_url": None,
        "verification_level": 2,
        "default_message_notifications": 1,
        "explicit_content_filter": 2,
        "afk_timeout": timedelta(minutes=5),
        "system_channel_flags": 0,
        "preferred_locale": "en-US",
        "features": ["COMMUNITY"],
        "approximate_member_count": 42,
    }
    defaults.update(attributes)
    return SimpleNamespace(**defaults)


class Timeline:
    """API calls and sleeps in the order they happened."""

    events: list[tuple[str, typing.Any]]

    def __init__(self) -> None:
        self.events = []

    def calls(self, method: str) -> list[tuple[str, str, tuple, dict]]:
        return [x for kind, x in self.events if kind == "call" and x[0] == method]

    def sleeps(self) -> list[float]:
        return [x for kind, x in self.events if kind == "sleep"]


class RecordingSleep:
    def __init__(self, timeline: Timeline) -> None:
        self.timeline = timeline

    async def __call__(self, delay: float) -> None:
        self.timeline.events.append(("sleep", delay))


class FakeRest:
    """In-memory stand-in for the parts of ``hikari.api.RESTClient`` we use."""

    channels: list[SimpleNamespace]
    emojis: list[SimpleNamespace]
    failures: dict[tuple[str, str], Exception]

    def __init__(self, timeline: Timeline | None = None) -> None:
        self.timeline = Timeline() if timeline is None else timeline
        self.ids = itertools.count(1000)
        self.guild = make_guild()
        self.roles = [
            make_role(GUILD_ID, "@everyone", 0),
            make_role(BOT_ROLE_ID, "Cleaner", 50, managed=True),
        ]
        self.channels = []
        self.emojis = []
        self.failures = {}
        self.me = SimpleNamespace(id=hikari.Snowflake(BOT_ID))
        self.member = SimpleNamespace(role_ids=[hikari.Snowflake(BOT_ROLE_ID)])

    def fail(self, method: str, name: str, error: Exception | None = None) -> None:
        self.failures[(method, name)] = error or RuntimeError("Missing Permissions")

    def _call(
        self, method: str, label: str, /, *args: typing.Any, **kwargs: typing.Any
    ) -> None:
        self.timeline.events.append(("call", (method, label, args, kwargs)))
        error = self.failures.get((method, label))
        if error is not None:
            raise error

    async def fetch_guild(self, guild: int) -> SimpleNamespace:
        return self.guild

    async def fetch_roles(self, guild: int) -> list[SimpleNamespace]:
        return list(self.roles)

    async def fetch_guild_channels(self, guild: int) -> list[SimpleNamespace]:
        return list(self.channels)

    async def fetch_guild_emojis(self, guild: int) -> list[SimpleNamespace]:
        return list(self.emojis)

    async def fetch_my_user(self) -> SimpleNamespace:
        return self.me

    async def fetch_member(self, guild: int, user: int) -> SimpleNamespace:
        return self.member

    async def delete_channel(self, channel: int, **kwargs: typing.Any) -> None:
        found = next(x for x in self.channels if x.id == channel)
        self._call("delete_channel", found.name, channel, **kwargs)
        self.channels.remove(found)

    async def delete_role(self, guild: int, role: int, **kwargs: typing.Any) -> None:
        found = next(x for x in self.roles if x.id == role)
        self._call("delete_role", found.name, guild, role, **kwargs)
        self.roles.remove(found)

    async def edit_guild(self, guild: int, **kwargs: typing.Any) -> SimpleNamespace:
        self._call("edit_guild", kwargs.get("name", ""), guild, **kwargs)
        return self.guild

    async def create_role(self, guild: int, **kwargs: typing.Any) -> SimpleNamespace:
        self._call("create_role", kwargs["name"], guild, **kwargs)
        role = make_role(
            next(self.ids),
            kwargs["name"],
            1,
            permissions=int(kwargs.get("permissions", 0)),
            color=int(kwargs.get("color", 0)),
        )
        self.roles.append(role)
        return role

    async def reposition_roles(
        self, guild: int, positions: typing.Mapping[int, int]
    ) -> None:
        self._call("reposition_roles", "", guild, positions)
        for position, role_id in positions.items():
            next(x for x in self.roles if x.id == role_id).position = position

    async def _create_channel(
        self, method: str, type: int, guild: int, name: str, **kwargs: typing.Any
    ) -> SimpleNamespace:
        self._call(method, name, guild, **kwargs)
        channel = make_channel(
            next(self.ids),
            name,
            type,
            kwargs.get("position", 0),
            parent_id=kwargs.get("category"),
            overwrites=kwargs.get("permission_overwrites", ()),
        )
        self.channels.append(channel)
        return channel

    async def create_guild_category(
        self, guild: int, name: str, **kwargs: typing.Any
    ) -> SimpleNamespace:
        return await self._create_channel(
            "create_guild_category",
            hikari.ChannelType.GUILD_CATEGORY,
            guild,
            name,
            **kwargs,
        )

    async def create_guild_text_channel(
        self, guild: int, name: str, **kwargs: typing.Any
    ) -> SimpleNamespace:
        return await self._create_channel(
            "create_guild_text_channel",
            hikari.ChannelType.GUILD_TEXT,
            guild,
            name,
            **kwargs,
        )

    async def create_guild_voice_channel(
        self, guild: int, name: str, **kwargs: typing.Any
    ) -> SimpleNamespace:
        return await self._create_channel(
            "create_guild_voice_channel",
            hikari.ChannelType.GUILD_VOICE,
            guild,
            name,
            **kwargs,
        )

    async def create_guild_stage_channel(
        self, guild: int, name: str, **kwargs: typing.Any
    ) -> SimpleNamespace:
        return await self._create_channel(
            "create_guild_stage_channel",
            hikari.ChannelType.GUILD_STAGE,
            guild,
            name,
            **kwargs,
        )

    async def create_guild_forum_channel(
        self, guild: int, name: str, **kwargs: typing.Any
    ) -> SimpleNamespace:
        return await self._create_channel(
            "create_guild_forum_channel",
            hikari.ChannelType.GUILD_FORUM,
            guild,
            name,
            **kwargs,
        )

    async def create_emoji(
        self, guild: int, name: str, image: str, **kwargs: typing.Any
    ) -> SimpleNamespace:
        self._call("create_emoji", name, guild, image, **kwargs)
        emoji = SimpleNamespace(
            id=hikari.Snowflake(next(self.ids)),
            name=name,
            url=image,
            is_animated=False,
            role_ids=[],
        )
        self.emojis.append(emoji)
        return emoji


class FakeFetcher:
    requested: list[str]

    def __init__(self, assets: dict[str, bytes] | None = None) -> None:
        self.assets = {} if assets is None else assets
        self.requested = []

    async def fetch(self, url: str) -> bytes | None:
        self.requested.append(url)
        return self.assets.get(url)

    async def aclose(self) -> None:
        pass


@pytest.fixture
def timeline() -> Timeline:
    return Timeline()


@pytest.fixture
def rest(timeline: Timeline) -> FakeRest:
    return FakeRest(timeline)


@pytest.fixture
def sleep(timeline: Timeline) -> RecordingSleep:
    return RecordingSleep(timeline)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()
