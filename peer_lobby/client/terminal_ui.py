"""Terminal UI rendering with blessed."""

from __future__ import annotations

from blessed import Terminal

from ..session.state import Role

# Lines reserved for the status bar, guest list, separator and input line
RESERVED_LINES = 4


class TerminalUI:
    def __init__(self, terminal: Terminal):
        self.term = terminal
        self._last_frame: list[str] | None = None

    def _status_line(self, role: Role, identifier: str | None) -> str:
        term = self.term
        ident = identifier or "(no identity)"
        if role.is_hosting:
            badge = term.black_on_green(" HOST ")
        elif role.is_guest:
            badge = term.black_on_cyan(" GUEST ")
        else:
            badge = term.black_on_white(" IDLE ")
        return f"{badge} {term.bold(str(role))}  id: {term.yellow(ident)}"

    def _guest_line(self, role: Role, guests: list[str]) -> str:
        if role.is_hosting:
            names = ", ".join(sorted(guests)) if guests else "waiting for guests"
            return self.term.dim(f"Guests ({len(guests)}): {names}")
        if role.is_guest:
            return self.term.dim(f"Host: {role.host_id}")
        return self.term.dim("/host to start a session, /join <id> to join one")

    def render(
        self,
        role: Role,
        identifier: str | None,
        guests: list[str],
        log: list[str],
        input_buffer: str,
    ) -> None:
        """Render the session state to the terminal."""
        term = self.term
        width = max(20, term.width)
        log_height = max(1, term.height - RESERVED_LINES)

        lines = [
            self._status_line(role, identifier),
            self._guest_line(role, guests),
        ]
        visible = log[-log_height:]
        lines.extend(term.truncate(entry, width) for entry in visible)
        lines.extend("" for _ in range(log_height - len(visible)))
        lines.append("-" * width)
        lines.append(term.truncate(f"> {input_buffer}", width))

        # Skip redraw if nothing changed
        if lines == self._last_frame:
            return
        self._last_frame = lines

        output = [str(term.home)]
        for line in lines:
            output.append(line + str(term.clear_eol) + "\n")
        print("".join(output).rstrip("\n"), end="", flush=True)

    def cleanup(self) -> None:
        print(str(self.term.normal), end="", flush=True)
