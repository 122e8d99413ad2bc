"""Shared username and group registry for the chat server.

This module handles:
- Username registration and lookup
- Group membership (named groups and the default group)
- Routing of private, group and default-group messages

Every operation runs under one registry-wide lock. Delivery only queues a
line on the recipient session, so fan-out never waits on a socket while the
lock is held.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

from .constants import (
    DEFAULT_GROUP,
    FMT_GROUP,
    FMT_PRIVATE,
    NOTICE_ALREADY_IN_GROUP,
    NOTICE_CANNOT_LEAVE_DEFAULT,
    NOTICE_GROUP_CREATED,
    NOTICE_GROUP_NOT_FOUND,
    NOTICE_GROUPS,
    NOTICE_JOINED_GROUP,
    NOTICE_LEFT_DEFAULT,
    NOTICE_LEFT_GROUP,
    NOTICE_NO_GROUPS,
    NOTICE_NO_USERS,
    NOTICE_NOT_A_MEMBER,
    NOTICE_REJOINED_DEFAULT,
    NOTICE_USER_NOT_FOUND,
    NOTICE_USERS,
)

if TYPE_CHECKING:
    from .stats import StatsManager


class Member(Protocol):
    """What the registry needs from a session."""

    username: str | None

    def send(self, text: str) -> bool: ...


class Registry:
    """Tracks connected usernames and group memberships."""

    def __init__(
        self,
        default_group: str = DEFAULT_GROUP,
        *,
        stats: StatsManager | None = None,
    ) -> None:
        self.log = logging.getLogger("minichatd.registry")
        self.default_group = default_group
        self.stats = stats

        self._lock = threading.RLock()
        self.sessions: dict[str, Member] = {}
        self.groups: dict[str, set[Member]] = {default_group: set()}

    def _inc(self, key: str, delta: int = 1) -> None:
        if self.stats is not None:
            self.stats.inc(key, delta)

    def _deliver(self, member: Member, text: str) -> None:
        if member.send(text):
            self._inc("deliveries")

    # Usernames

    def has_username(self, username: str) -> bool:
        with self._lock:
            return username in self.sessions

    def get_session(self, username: str) -> Member | None:
        with self._lock:
            return self.sessions.get(username)

    def register(self, username: str, session: Member) -> bool:
        """Bind ``username`` to ``session`` and put it in the default group.

        Returns False when the name is already taken.
        """
        with self._lock:
            if username in self.sessions:
                self._inc("names_taken")
                return False
            self.sessions[username] = session
            self.groups[self.default_group].add(session)
        self._inc("registrations")
        self.log.info("Registered username=%r", username)
        return True

    def deregister(self, username: str, session: Member | None = None) -> int:
        """Drop ``username`` and remove its session from every group.

        When ``session`` is given, the name is only released if it is still
        bound to that session. Returns the number of groups left.
        """
        with self._lock:
            bound = self.sessions.get(username)
            if bound is None:
                return 0
            if session is not None and bound is not session:
                return 0
            self.sessions.pop(username, None)

            left = [g for g, members in self.groups.items() if bound in members]
            for group in left:
                self._remove_member(group, bound)

        self.log.info("Deregistered username=%r groups_left=%d", username, len(left))
        return len(left)

    # Groups

    def _remove_member(self, group: str, member: Member) -> None:
        """Remove a member, deleting the group if it is a named group left empty.

        Must be called with the lock held.
        """
        members = self.groups.get(group)
        if members is None:
            return
        members.discard(member)
        if not members and group != self.default_group:
            self.groups.pop(group, None)
            self._inc("groups_deleted")
            self.log.info("Group %s has been removed as it has no members.", group)

    def other_group_count(self, session: Member) -> int:
        """Number of named (non-default) groups the session belongs to."""
        with self._lock:
            return sum(
                1
                for g, members in self.groups.items()
                if g != self.default_group and session in members
            )

    def group_members(self, group: str) -> set[Member]:
        """Snapshot of a group's member set (empty if the group is unknown)."""
        with self._lock:
            return set(self.groups.get(group, ()))

    def has_group(self, group: str) -> bool:
        with self._lock:
            return group in self.groups

    def create_group(self, group: str, session: Member) -> None:
        """Create ``group`` if needed and add ``session`` as a member."""
        with self._lock:
            members = self.groups.get(group)
            if members is None:
                self.groups[group] = {session}
                self._inc("groups_created")
                self.log.info("Group created group=%r by=%r", group, session.username)
                self._deliver(session, NOTICE_GROUP_CREATED.format(group=group))
                return

            if session in members:
                self._deliver(session, NOTICE_ALREADY_IN_GROUP.format(group=group))
                return

            members.add(session)
            self._deliver(session, NOTICE_JOINED_GROUP.format(group=group))

    def join_group(self, group: str, session: Member) -> None:
        """Join an existing group, leaving the default group on the way in."""
        with self._lock:
            members = self.groups.get(group)
            if members is None:
                self._deliver(session, NOTICE_GROUP_NOT_FOUND)
                return

            if session in members:
                self._deliver(session, NOTICE_ALREADY_IN_GROUP.format(group=group))
                return

            default_members = self.groups[self.default_group]
            if session in default_members:
                default_members.discard(session)
                self._deliver(session, NOTICE_LEFT_DEFAULT)

            members.add(session)
            self._deliver(session, NOTICE_JOINED_GROUP.format(group=group))

    def leave_group(self, group: str, session: Member) -> None:
        """Leave a named group; the session falls back to the default group
        once it belongs to no named group at all."""
        with self._lock:
            members = self.groups.get(group)
            if members is None:
                self._deliver(session, NOTICE_GROUP_NOT_FOUND)
                return

            if group == self.default_group:
                self._deliver(session, NOTICE_CANNOT_LEAVE_DEFAULT)
                return

            if session not in members:
                self._deliver(session, NOTICE_NOT_A_MEMBER.format(group=group))
                return

            self._remove_member(group, session)
            self._deliver(session, NOTICE_LEFT_GROUP.format(group=group))

            default_members = self.groups[self.default_group]
            if session not in default_members and not any(
                session in m for g, m in self.groups.items() if g != self.default_group
            ):
                default_members.add(session)
                self._deliver(session, NOTICE_REJOINED_DEFAULT)

    # Routing

    def send_to_user(self, recipient: str, message: str, sender: Member) -> bool:
        """Deliver a private message. Returns False if the user is unknown."""
        with self._lock:
            target = self.sessions.get(recipient)
            if target is None:
                self._deliver(sender, NOTICE_USER_NOT_FOUND)
                return False
            self._deliver(
                target, FMT_PRIVATE.format(sender=sender.username, message=message)
            )
        self._inc("private_msgs")
        return True

    def send_to_group(self, group: str, message: str, sender: Member) -> int:
        """Deliver ``message`` to a group. Returns the number of recipients.

        Default-group traffic only reaches members that belong to no named
        group, evaluated per recipient at delivery time.
        """
        with self._lock:
            members = self.groups.get(group)
            if members is None:
                self._deliver(sender, NOTICE_GROUP_NOT_FOUND)
                return 0

            line = FMT_GROUP.format(group=group, sender=sender.username, message=message)

            if group == self.default_group:
                named = [m for g, m in self.groups.items() if g != self.default_group]
                recipients = [
                    member
                    for member in members
                    if not any(member in other for other in named)
                ]
                self._inc("default_msgs")
            else:
                recipients = list(members)
                self._inc("group_msgs")

            for member in recipients:
                self._deliver(member, line)

        return len(recipients)

    # Listings

    def list_usernames(self) -> str:
        with self._lock:
            names = sorted(self.sessions.keys())
        if not names:
            return NOTICE_NO_USERS
        return NOTICE_USERS.format(names=", ".join(names))

    def list_group_names(self) -> str:
        with self._lock:
            names = sorted(self.groups.keys())
        if not names:
            return NOTICE_NO_GROUPS
        return NOTICE_GROUPS.format(names=", ".join(names))

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics for monitoring."""
        with self._lock:
            return {
                "users": len(self.sessions),
                "groups": len(self.groups),
                "memberships": sum(len(m) for m in self.groups.values()),
            }

    def clear_all(self) -> list[Member]:
        """
        Drop every registration and membership; return the sessions that were
        registered so the caller can close them.
        """
        with self._lock:
            sessions = list(self.sessions.values())
            self.sessions.clear()
            self.groups.clear()
            self.groups[self.default_group] = set()
        return sessions
