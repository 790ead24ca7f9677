from __future__ import annotations

import threading

from rich.console import Console
from rich.control import Control
from rich.segment import ControlType

from .style import gradient_text

DEFAULT_LABEL = "✨ ─────── running magik ─────── ✨"
FRAME_INTERVAL_S = 0.05
DEFAULT_SPEED = -0.009


class ProgressIndicator:
    """Animated status line painted from a background thread.

    ``stop()`` signals the thread and joins it; the thread clears its line as
    its last act, so nothing it paints can land after the caller resumes
    printing.
    """

    def __init__(
        self,
        console: Console,
        label: str = DEFAULT_LABEL,
        *,
        speed: float = DEFAULT_SPEED,
        interval: float = FRAME_INTERVAL_S,
    ) -> None:
        self.console = console
        self.label = label
        self.speed = speed
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.frames = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="shellm-indicator", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join()
        self._thread = None

    def __enter__(self) -> "ProgressIndicator":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run(self) -> None:
        paint = self.console.is_terminal
        offset = 0.0
        if paint:
            self.console.show_cursor(False)
        try:
            while not self._stop_event.is_set():
                if paint:
                    self._render_frame(offset)
                self.frames += 1
                offset = (offset + self.speed) % 1.0
                self._stop_event.wait(self.interval)
        finally:
            if paint:
                self._clear_line()
                self.console.show_cursor(True)

    def _render_frame(self, offset: float) -> None:
        self.console.control(Control.move_to_column(0), Control((ControlType.ERASE_IN_LINE, 2)))
        self.console.print(gradient_text(self.label, offset), end="", soft_wrap=True)

    def _clear_line(self) -> None:
        self.console.control(Control.move_to_column(0), Control((ControlType.ERASE_IN_LINE, 2)))
