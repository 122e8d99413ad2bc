"""Command parsing and dispatch for the line protocol."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from .constants import (
    CMD_CREATE,
    CMD_JOIN,
    CMD_LEAVE,
    CMD_LIST_GROUPS,
    CMD_LIST_USERS,
    CMD_QUIT,
    CMD_SEND_GROUP,
    CMD_SEND_USER,
    FMT_DEFAULT_BODY,
    NOTICE_BARE_SLASH,
    NOTICE_DEFAULT_GROUP_CONFLICT,
    NOTICE_GOODBYE,
    NOTICE_UNKNOWN_COMMAND,
    USAGE_CREATE,
    USAGE_JOIN,
    USAGE_LEAVE,
    USAGE_SEND_GROUP,
    USAGE_SEND_USER,
)
from .util import split_args

if TYPE_CHECKING:
    from .service import ChatService
    from .session import Session


class CommandKind(enum.Enum):
    QUIT = "quit"
    SEND_USER = "sendUser"
    CREATE = "create"
    JOIN = "join"
    LEAVE = "leave"
    SEND_GROUP = "sendGroup"
    LIST_USERS = "listUsers"
    LIST_GROUPS = "listGroups"
    BARE_SLASH = "bareSlash"
    DEFAULT_MESSAGE = "defaultMessage"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Command:
    """One parsed input line.

    ``target`` is the user or group argument; ``text`` is the message body,
    or the usage notice for MALFORMED commands.
    """

    kind: CommandKind
    target: str | None = None
    text: str | None = None


# command word -> (kind, required argument count, usage)
_GRAMMAR: dict[str, tuple[CommandKind, int, str | None]] = {
    CMD_SEND_USER: (CommandKind.SEND_USER, 2, USAGE_SEND_USER),
    CMD_CREATE: (CommandKind.CREATE, 1, USAGE_CREATE),
    CMD_JOIN: (CommandKind.JOIN, 1, USAGE_JOIN),
    CMD_LEAVE: (CommandKind.LEAVE, 1, USAGE_LEAVE),
    CMD_SEND_GROUP: (CommandKind.SEND_GROUP, 2, USAGE_SEND_GROUP),
    CMD_LIST_USERS: (CommandKind.LIST_USERS, 0, None),
    CMD_LIST_GROUPS: (CommandKind.LIST_GROUPS, 0, None),
}


def parse_command(line: str) -> Command:
    if line.lower() == CMD_QUIT:
        return Command(CommandKind.QUIT)

    if line == "/":
        return Command(CommandKind.BARE_SLASH)

    if not line.startswith("/"):
        if not line:
            return Command(CommandKind.UNKNOWN)
        return Command(CommandKind.DEFAULT_MESSAGE, text=line)

    word = line.split(" ", 1)[0]
    entry = _GRAMMAR.get(word)
    if entry is None:
        return Command(CommandKind.UNKNOWN)

    kind, argc, usage = entry
    if argc == 0:
        return Command(kind)

    # The message body is whatever follows the fixed leading tokens.
    args = split_args(line, argc)[1:]
    if argc == 1 and args:
        # Trailing tokens after a group name are ignored.
        args = [args[0].split(" ", 1)[0]]
    if len(args) < argc or any(not a for a in args):
        return Command(CommandKind.MALFORMED, text=usage)

    if argc == 1:
        return Command(kind, target=args[0])
    return Command(kind, target=args[0], text=args[1])


class CommandHandler:
    """Maps parsed commands onto registry and session operations."""

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("minichatd.commands")
        self._handlers: dict[CommandKind, Callable[[Session, Command], None]] = {
            CommandKind.QUIT: self._quit,
            CommandKind.SEND_USER: self._send_user,
            CommandKind.CREATE: self._create,
            CommandKind.JOIN: self._join,
            CommandKind.LEAVE: self._leave,
            CommandKind.SEND_GROUP: self._send_group,
            CommandKind.LIST_USERS: self._list_users,
            CommandKind.LIST_GROUPS: self._list_groups,
            CommandKind.BARE_SLASH: self._bare_slash,
            CommandKind.DEFAULT_MESSAGE: self._default_message,
            CommandKind.MALFORMED: self._malformed,
            CommandKind.UNKNOWN: self._unknown,
        }
        missing = set(CommandKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no handler for {sorted(k.name for k in missing)}")

    def dispatch(self, session: Session, line: str) -> Command:
        cmd = parse_command(line)
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Command sid=%s username=%r kind=%s target=%r",
                session.sid,
                session.username,
                cmd.kind.name,
                cmd.target,
            )
        self._handlers[cmd.kind](session, cmd)
        return cmd

    def _in_default_conflict(self, session: Session) -> bool:
        if self.hub.registry.other_group_count(session) > 0:
            self.hub.stats_manager.inc("default_rejected")
            session.send(NOTICE_DEFAULT_GROUP_CONFLICT)
            return True
        return False

    def _quit(self, session: Session, cmd: Command) -> None:
        session.send(NOTICE_GOODBYE)
        session.close()

    def _send_user(self, session: Session, cmd: Command) -> None:
        self.hub.registry.send_to_user(cmd.target, cmd.text, session)

    def _create(self, session: Session, cmd: Command) -> None:
        self.hub.registry.create_group(cmd.target, session)

    def _join(self, session: Session, cmd: Command) -> None:
        self.hub.registry.join_group(cmd.target, session)

    def _leave(self, session: Session, cmd: Command) -> None:
        self.hub.registry.leave_group(cmd.target, session)

    def _send_group(self, session: Session, cmd: Command) -> None:
        if cmd.target == self.hub.registry.default_group and self._in_default_conflict(
            session
        ):
            return
        self.hub.registry.send_to_group(cmd.target, cmd.text, session)

    def _list_users(self, session: Session, cmd: Command) -> None:
        session.send(self.hub.registry.list_usernames())

    def _list_groups(self, session: Session, cmd: Command) -> None:
        session.send(self.hub.registry.list_group_names())

    def _bare_slash(self, session: Session, cmd: Command) -> None:
        session.send(NOTICE_BARE_SLASH)

    def _default_message(self, session: Session, cmd: Command) -> None:
        if self._in_default_conflict(session):
            return
        self.hub.registry.send_to_group(
            self.hub.registry.default_group,
            FMT_DEFAULT_BODY.format(message=cmd.text),
            session,
        )

    def _malformed(self, session: Session, cmd: Command) -> None:
        session.send(cmd.text)

    def _unknown(self, session: Session, cmd: Command) -> None:
        session.send(NOTICE_UNKNOWN_COMMAND)
