"""Keyboard input and command line parsing."""

import enum

from blessed.keyboard import Keystroke


class Command(enum.Enum):
    SAY = "say"
    HOST = "host"
    JOIN = "join"
    LEAVE = "leave"
    QUIT = "quit"
    HELP = "help"
    UNKNOWN = "unknown"


COMMANDS = {
    "/host": Command.HOST,
    "/join": Command.JOIN,
    "/leave": Command.LEAVE,
    "/quit": Command.QUIT,
    "/q": Command.QUIT,
    "/help": Command.HELP,
    "/?": Command.HELP,
}

HELP_TEXT = (
    "/host  start hosting | /join <id>  join a host | "
    "/leave  leave the session | /quit  exit"
)


def parse_line(line: str) -> tuple[Command, str]:
    """Split an input line into a command and its argument.

    Lines that don't start with '/' are chat text. '//' escapes a leading
    slash.
    """
    line = line.strip()
    if not line.startswith("/"):
        return Command.SAY, line
    if line.startswith("//"):
        return Command.SAY, line[1:]

    word, _, arg = line.partition(" ")
    return COMMANDS.get(word.lower(), Command.UNKNOWN), arg.strip()


def apply_key(buffer: str, key: Keystroke) -> tuple[str, str | None]:
    """Apply a key press to the input buffer.

    Returns the new buffer and the submitted line (on Enter), or None.
    """
    if key.name == "KEY_ENTER" or str(key) in ("\n", "\r"):
        return "", buffer
    if key.name in ("KEY_BACKSPACE", "KEY_DELETE") or str(key) in ("\x7f", "\x08"):
        return buffer[:-1], None
    if key.name == "KEY_ESCAPE":
        return "", None
    if not key.is_sequence and str(key).isprintable():
        return buffer + str(key), None
    return buffer, None
