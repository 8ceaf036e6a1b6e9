from __future__ import annotations

import sys
import typing

if typing.TYPE_CHECKING:
    from runorder.display.reconciler import DisplayView


class DisplayRenderer:
    """Render target for an audience display."""

    def render(self, view: DisplayView) -> None:
        pass

    def focus(self) -> None:
        pass

    def close(self) -> None:
        pass


class ConsoleRenderer(DisplayRenderer):
    """Writes one status line per view change. Used by the `display` command."""

    def __init__(self, stream: typing.TextIO | None = None):
        self.stream = stream if stream is not None else sys.stdout
        self.closed = False

    def render(self, view: DisplayView) -> None:
        if view.message_visible:
            line = f"[{view.theme}] MESSAGE: {view.message_text}"
        else:
            state = "LIVE" if view.running else "PAUSED"
            following = view.next_name or "end of session"
            line = (
                f"[{view.theme}] {state} {view.headline}"
                f"{f' ({view.leader})' if view.leader else ''} "
                f"{view.timer} [{view.urgency}] | next: {following}"
            )
        print(line, file=self.stream, flush=True)

    def focus(self) -> None:
        print("-" * 70, file=self.stream, flush=True)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            print("Display closed.", file=self.stream, flush=True)
