from __future__ import annotations

import logging
import typing

import hikari

from .codec import decode_permissions
from .types import EVERYONE_ROLE_NAME, SnapshotOverwrite

logger = logging.getLogger(__name__)
HandleT = typing.TypeVar("HandleT")


class NameMap(typing.Generic[HandleT]):
    """Snapshot name -> entity created during this restore.

    Names are expected to be unique. When they are not, the first entity
    bound to a name keeps it.
    """

    entries: dict[str, HandleT]

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.entries = {}

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> typing.Iterator[str]:
        return iter(self.entries)

    def bind(self, name: str, handle: HandleT) -> bool:
        if name in self.entries:
            logger.warning(
                f"duplicate {self.kind} name {name!r}, keeping the first mapping"
            )
            return False
        self.entries[name] = handle
        return True

    def get(self, name: str | None) -> HandleT | None:
        if name is None:
            return None
        return self.entries.get(name)


class IdentityRemapper:
    roles: NameMap[hikari.Role]
    categories: NameMap[hikari.GuildCategory]

    def __init__(self, everyone_role: hikari.Role) -> None:
        self.roles = NameMap("role")
        self.categories = NameMap("category")
        self.roles.bind(EVERYONE_ROLE_NAME, everyone_role)

    def translate_overwrites(
        self, overwrites: typing.Iterable[SnapshotOverwrite]
    ) -> list[hikari.PermissionOverwrite]:
        result = []
        for overwrite in overwrites:
            if overwrite["type"] == "role":
                role = self.roles.get(overwrite["role_name"])
                if role is None:
                    # never point an overwrite at a role id from the old server
                    logger.debug(
                        f"dropping overwrite for unknown role {overwrite['role_name']!r}"
                    )
                    continue
                target = role.id
                overwrite_type = hikari.PermissionOverwriteType.ROLE
            else:
                target = hikari.Snowflake(int(overwrite["id"]))
                overwrite_type = hikari.PermissionOverwriteType.MEMBER

            result.append(
                hikari.PermissionOverwrite(
                    id=target,
                    type=overwrite_type,
                    allow=decode_permissions(overwrite["allow"]),
                    deny=decode_permissions(overwrite["deny"]),
                )
            )
        return result
