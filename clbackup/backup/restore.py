from __future__ import annotations

import enum
import functools
import logging
import posixpath
import typing
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import hikari

from ..config import BackupConfig
from ..shared.assets import AssetFetcher
from ..shared.pacing import Outcome, OutcomeCallback, PacedExecutor, Sleep
from .capture import channel_kind
from .codec import decode_permissions
from .remap import IdentityRemapper
from .types import ChannelKind, Snapshot, SnapshotChannel, SnapshotChannelOptionalKeys

logger = logging.getLogger(__name__)
GUILD_IMAGES: typing.Final = ("icon", "banner", "splash")


class RestorePhase(str, enum.Enum):
    TEARDOWN_CHANNELS = "teardown_channels"
    TEARDOWN_ROLES = "teardown_roles"
    SETTINGS = "settings"
    ROLES = "roles"
    ROLE_POSITIONS = "role_positions"
    CHANNELS = "channels"
    EMOJIS = "emojis"
    DONE = "done"


class ChannelCreator(typing.NamedTuple):
    method: str
    # snapshot key -> keyword argument of the create call
    fields: dict[SnapshotChannelOptionalKeys, str]


TEXT_CREATOR: typing.Final = ChannelCreator(
    "create_guild_text_channel",
    {
        "topic": "topic",
        "nsfw": "nsfw",
        "rate_limit_per_user": "rate_limit_per_user",
        "default_auto_archive_duration": "default_auto_archive_duration",
    },
)
CHANNEL_CREATORS: typing.Final[dict[ChannelKind, ChannelCreator]] = {
    ChannelKind.TEXT: TEXT_CREATOR,
    ChannelKind.VOICE: ChannelCreator(
        "create_guild_voice_channel",
        {"bitrate": "bitrate", "user_limit": "user_limit", "rtc_region": "region"},
    ),
    ChannelKind.STAGE: ChannelCreator(
        "create_guild_stage_channel",
        {"bitrate": "bitrate", "user_limit": "user_limit", "rtc_region": "region"},
    ),
    ChannelKind.FORUM: ChannelCreator(
        "create_guild_forum_channel",
        {
            "topic": "topic",
            "nsfw": "nsfw",
            "rate_limit_per_user": "rate_limit_per_user",
            "default_auto_archive_duration": "default_auto_archive_duration",
        },
    ),
}
# announcement channels are deprecated in favor of plain text channels
DOWNGRADED_KINDS: typing.Final = {ChannelKind.ANNOUNCEMENT: ChannelKind.TEXT}


@dataclass
class RestoreReport:
    guild_id: int
    state: RestorePhase = RestorePhase.TEARDOWN_CHANNELS
    outcomes: list[Outcome] = field(default_factory=list)
    remapper: IdentityRemapper | None = None

    def phase(self, phase: RestorePhase) -> list[Outcome]:
        return [x for x in self.outcomes if x.phase == phase.value]

    def count(self, phase: RestorePhase) -> tuple[int, int]:
        outcomes = self.phase(phase)
        return sum(x.ok for x in outcomes), len(outcomes)

    @property
    def failures(self) -> list[Outcome]:
        return [x for x in self.outcomes if not x.ok]

    def summary(self) -> str:
        parts = []
        for phase in (RestorePhase.ROLES, RestorePhase.CHANNELS, RestorePhase.EMOJIS):
            ok, total = self.count(phase)
            parts.append(f"restored {ok}/{total} {phase.value}")
        return ", ".join(parts)


def resolve_kind(entry: SnapshotChannel) -> ChannelKind:
    try:
        return ChannelKind(entry["kind"])
    except (KeyError, ValueError):
        return channel_kind(entry["type"])


def asset_filename(name: str, url: str) -> str:
    extension = posixpath.splitext(urlsplit(url).path)[1] or ".png"
    return f"{name}{extension}"


class GuildRestorer:
    """Destructively rebuilds a guild from a snapshot.

    The phases run strictly in order. Failures of single roles, channels or
    emojis are recorded and skipped; errors while listing what has to be torn
    down are not caught and end the run.
    """

    remapper: IdentityRemapper

    def __init__(
        self,
        rest: hikari.api.RESTClient,
        guild_id: hikari.Snowflake,
        config: BackupConfig,
        fetcher: AssetFetcher,
        executor: PacedExecutor,
        report: RestoreReport,
    ) -> None:
        self.rest = rest
        self.guild_id = guild_id
        self.config = config
        self.fetcher = fetcher
        self.executor = executor
        self.report = report

    def enter(self, phase: RestorePhase) -> None:
        self.report.state = phase
        logger.info(f"restore {self.guild_id}: {phase.value}")

    async def run(self, snapshot: Snapshot) -> None:
        logger.info(
            f"restoring snapshot of {snapshot['metadata']['guild_name']} "
            f"({snapshot['metadata']['guild_id']}) into {self.guild_id}"
        )

        self.enter(RestorePhase.TEARDOWN_CHANNELS)
        await self.delete_channels()

        self.enter(RestorePhase.TEARDOWN_ROLES)
        everyone_role = await self.delete_roles()
        self.remapper = self.report.remapper = IdentityRemapper(everyone_role)

        self.enter(RestorePhase.SETTINGS)
        await self.restore_settings(snapshot)

        self.enter(RestorePhase.ROLES)
        await self.restore_roles(snapshot)

        self.enter(RestorePhase.ROLE_POSITIONS)
        await self.restore_role_positions(snapshot)

        self.enter(RestorePhase.CHANNELS)
        await self.restore_channels(snapshot)

        self.enter(RestorePhase.EMOJIS)
        await self.restore_emojis(snapshot)

        self.enter(RestorePhase.DONE)
        logger.info(f"restore {self.guild_id} finished: {self.report.summary()}")

    async def delete_channels(self) -> None:
        channels = await self.rest.fetch_guild_channels(self.guild_id)
        for channel in channels:
            await self.executor.submit(
                RestorePhase.TEARDOWN_CHANNELS.value,
                channel.name or str(channel.id),
                functools.partial(self.rest.delete_channel, channel.id),
                category="delete",
            )

    async def delete_roles(self) -> hikari.Role:
        roles = await self.rest.fetch_roles(self.guild_id)
        everyone_role = None
        deletable = []
        for role in roles:
            if role.id == self.guild_id:
                everyone_role = role
            elif not role.is_managed:
                deletable.append(role)

        if everyone_role is None:
            raise RuntimeError(f"guild {self.guild_id} has no @everyone role")

        # highest first
        for role in sorted(deletable, key=lambda r: r.position, reverse=True):
            await self.executor.submit(
                RestorePhase.TEARDOWN_ROLES.value,
                role.name,
                functools.partial(self.rest.delete_role, self.guild_id, role.id),
                category="delete",
            )

        return everyone_role

    async def restore_settings(self, snapshot: Snapshot) -> None:
        settings = snapshot["guild"]
        kwargs: dict[str, typing.Any] = {
            "name": settings["name"],
            "verification_level": settings["verification_level"],
            "default_message_notifications": settings["default_message_notifications"],
            "explicit_content_filter_level": settings["explicit_content_filter"],
            "afk_timeout": settings["afk_timeout"],
            "preferred_locale": settings["preferred_locale"],
        }
        if settings.get("description"):
            kwargs["description"] = settings["description"]
        for key in GUILD_IMAGES:
            url = settings.get(key)
            if not url:
                continue
            data = await self.fetcher.fetch(url)
            if data is None:
                logger.info(f"skipping guild {key}, could not download {url}")
                continue
            kwargs[key] = hikari.Bytes(data, asset_filename(key, url))

        await self.executor.submit(
            RestorePhase.SETTINGS.value,
            settings["name"],
            functools.partial(
                self.rest.edit_guild, self.guild_id, reason=self.config.reason, **kwargs
            ),
        )

    async def restore_roles(self, snapshot: Snapshot) -> None:
        for entry in snapshot["roles"]:
            kwargs: dict[str, typing.Any] = {
                "name": entry["name"],
                "permissions": decode_permissions(entry["permissions"]),
                "color": hikari.Color(entry["color"] or 0),
                "hoist": entry["hoist"],
                "mentionable": entry["mentionable"],
            }
            if entry.get("unicode_emoji"):
                kwargs["unicode_emoji"] = entry["unicode_emoji"]

            outcome = await self.executor.submit(
                RestorePhase.ROLES.value,
                entry["name"],
                functools.partial(
                    self.rest.create_role,
                    self.guild_id,
                    reason=self.config.reason,
                    **kwargs,
                ),
                category="create",
            )
            if outcome.ok:
                self.remapper.roles.bind(entry["name"], outcome.value)

        ok, total = self.report.count(RestorePhase.ROLES)
        logger.info(f"restored {ok}/{total} roles")

    async def fetch_hierarchy(self) -> tuple[int | None, dict[int, int]]:
        """Our own top role position and the current position of every role.

        The top role is None when it cant be determined.
        """
        positions = {
            role.id: role.position for role in self.remapper.roles.entries.values()
        }
        try:
            me = await self.rest.fetch_my_user()
            member = await self.rest.fetch_member(self.guild_id, me.id)
            roles = await self.rest.fetch_roles(self.guild_id)
        except Exception as e:
            logger.warning(f"unable to determine own top role: {e}")
            return None, positions

        positions.update((role.id, role.position) for role in roles)
        ceiling = max(
            (positions[role_id] for role_id in member.role_ids if role_id in positions),
            default=0,
        )
        return ceiling, positions

    async def restore_role_positions(self, snapshot: Snapshot) -> None:
        ceiling, current = await self.fetch_hierarchy()

        positions: dict[int, hikari.Snowflake] = {}
        for entry in snapshot["roles"]:
            role = self.remapper.roles.get(entry["name"])
            if role is None or role.id == self.guild_id:
                continue
            if ceiling is not None and current.get(role.id, 0) >= ceiling:
                logger.debug(f"role {entry['name']!r} is above our top role")
                continue
            positions[entry["position"]] = role.id

        if not positions:
            return

        outcome = await self.executor.submit(
            RestorePhase.ROLE_POSITIONS.value,
            "role hierarchy",
            functools.partial(self.rest.reposition_roles, self.guild_id, positions),
        )
        if not outcome.ok:
            logger.warning(
                "role hierarchy may differ from the snapshot due to "
                f"permission limitations: {outcome.message}"
            )

    async def restore_channels(self, snapshot: Snapshot) -> None:
        for entry in snapshot["channels"]:
            if not entry["category"]:
                continue
            outcome = await self.executor.submit(
                RestorePhase.CHANNELS.value,
                entry["name"],
                functools.partial(
                    self.rest.create_guild_category,
                    self.guild_id,
                    entry["name"],
                    position=entry["position"],
                    permission_overwrites=self.remapper.translate_overwrites(
                        entry["permission_overwrites"]
                    ),
                    reason=self.config.reason,
                ),
                category="create",
            )
            if outcome.ok:
                self.remapper.categories.bind(entry["name"], outcome.value)

        for entry in snapshot["channels"]:
            if not entry["category"]:
                await self.create_channel(entry)

        ok, total = self.report.count(RestorePhase.CHANNELS)
        logger.info(f"restored {ok}/{total} channels")

    async def create_channel(self, entry: SnapshotChannel) -> Outcome:
        kind = resolve_kind(entry)
        kind = DOWNGRADED_KINDS.get(kind, kind)
        creator = CHANNEL_CREATORS.get(kind)
        if creator is None:
            outcome = Outcome(
                RestorePhase.CHANNELS.value,
                entry["name"],
                False,
                f"unsupported channel kind: {kind.value}",
            )
            logger.warning(f"skipping channel {entry['name']!r}: {outcome.message}")
            self.executor.record(outcome)
            return outcome

        kwargs: dict[str, typing.Any] = {
            "position": entry["position"],
            "permission_overwrites": self.remapper.translate_overwrites(
                entry["permission_overwrites"]
            ),
        }
        parent = self.remapper.categories.get(entry["parent"])
        if parent is not None:
            kwargs["category"] = parent.id
        elif entry["parent"] is not None:
            logger.debug(f"parent {entry['parent']!r} of {entry['name']!r} is missing")

        for key, argument in creator.fields.items():
            value = entry.get(key)
            if value is not None:
                kwargs[argument] = value

        return await self.executor.submit(
            RestorePhase.CHANNELS.value,
            entry["name"],
            functools.partial(
                getattr(self.rest, creator.method),
                self.guild_id,
                entry["name"],
                reason=self.config.reason,
                **kwargs,
            ),
            category="create",
        )

    async def restore_emojis(self, snapshot: Snapshot) -> None:
        for entry in snapshot["emojis"]:
            await self.executor.submit(
                RestorePhase.EMOJIS.value,
                entry["name"],
                functools.partial(
                    self.rest.create_emoji,
                    self.guild_id,
                    entry["name"],
                    entry["url"],
                    reason=self.config.reason,
                ),
                category="emoji",
            )

        ok, total = self.report.count(RestorePhase.EMOJIS)
        logger.info(f"restored {ok}/{total} emojis")


async def restore(
    rest: hikari.api.RESTClient,
    guild: hikari.SnowflakeishOr[hikari.PartialGuild],
    snapshot: Snapshot,
    *,
    config: BackupConfig | None = None,
    fetcher: AssetFetcher | None = None,
    sleep: Sleep | None = None,
    on_outcome: OutcomeCallback | None = None,
) -> RestoreReport:
    if config is None:
        config = BackupConfig()
    guild_id = hikari.Snowflake(int(guild))
    report = RestoreReport(guild_id)

    owns_fetcher = fetcher is None
    if fetcher is None:
        fetcher = AssetFetcher(
            timeout=config.asset_timeout, user_agent=config.user_agent
        )

    executor = PacedExecutor(config.intervals(), sleep=sleep, on_outcome=on_outcome)
    report.outcomes = executor.outcomes
    try:
        async with executor:
            restorer = GuildRestorer(rest, guild_id, config, fetcher, executor, report)
            await restorer.run(snapshot)
    finally:
        if owns_fetcher:
            await fetcher.aclose()

    return report
