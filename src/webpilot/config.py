"""Runtime settings for a chat session and its browser tools."""

import dataclasses
from pathlib import Path

DEFAULT_HISTORY_WINDOW = 16
DEFAULT_MAX_ITERATIONS = 8
DEFAULT_REQUEST_TIMEOUT = 90.0
DEFAULT_SERVER_NAME = "webpilot"
DEFAULT_INLINE_BINARY_LIMIT = 5 * 1024 * 1024


@dataclasses.dataclass
class SessionConfig:
    """
    Tunables for one ``ChatSession``.

    Attributes:
        history_window: Messages kept in history; 0 keeps everything.
        max_iterations: Model round-trips allowed per turn.
        request_timeout: Seconds allowed for one prompt, model calls included.
        guard_timeout: Seconds a tool waits for the browser before giving up.
        server_name: Namespace prefix for tool names exposed to the model.
        focus_hint_limit: Maximum characters of the focused-element hint.
        headless: Launch the browser without a window.
        output_dir: Where captures and saved responses are written.
        inline_binary_limit: Larger captures are written to disk instead of returned inline.
    """

    history_window: int = DEFAULT_HISTORY_WINDOW
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    guard_timeout: float = 30.0
    server_name: str = DEFAULT_SERVER_NAME
    focus_hint_limit: int = 160
    headless: bool = True
    output_dir: Path = dataclasses.field(default_factory=lambda: Path.cwd() / "webpilot-output")
    inline_binary_limit: int = DEFAULT_INLINE_BINARY_LIMIT

    def __post_init__(self):
        if self.history_window < 0:
            raise ValueError("history_window must be non-negative")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.output_dir = Path(self.output_dir)
