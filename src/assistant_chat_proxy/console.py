import sys
import threading

from assistant_chat_proxy.models import ASSISTANT, Message

_SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

LINE_PREFIX = "assistant> "
USER_PROMPT = "you> "


class Spinner:
    """Thread-based spinner shown on the current line while a run is polled."""

    def __init__(self, prefix: str = LINE_PREFIX, label: str = " Waiting for assistant..."):
        self._prefix = prefix
        self._label = label
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._frame_width = 1 + len(label)

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        if self._thread:
            self._thread.join()
        clear = self._prefix + " " * self._frame_width
        sys.stdout.write("\r" + clear + "\r")
        sys.stdout.flush()

    def _run(self) -> None:
        i = 0
        try:
            while not self._stop.is_set():
                frame = _SPINNER_FRAMES[i % len(_SPINNER_FRAMES)] + self._label
                sys.stdout.write("\r" + self._prefix + frame)
                sys.stdout.flush()
                self._stop.wait(0.08)
                i += 1
        except (UnicodeEncodeError, OSError):
            pass  # Terminal doesn't support these characters


def format_message(message: Message) -> str:
    prefix = LINE_PREFIX if message.role == ASSISTANT else USER_PROMPT
    return prefix + message.content.replace("\n", "\n" + " " * len(prefix))
