from typing import Any, Callable, List

from utils.logger import get_logger

_logger = get_logger(__name__)


class Signal:
    """
    Minimal in-process publish/subscribe hook.

    Receivers run synchronously in connection order. A receiver that raises is
    logged and skipped so one broken listener cannot block the others.
    """

    def __init__(self, name: str = "signal"):
        self.name = name
        self._receivers: List[Callable[..., Any]] = []

    def connect(self, receiver: Callable[..., Any]) -> Callable[[], None]:
        self._receivers.append(receiver)

        def disconnect() -> None:
            if receiver in self._receivers:
                self._receivers.remove(receiver)

        return disconnect

    def emit(self, *args, **kwargs) -> None:
        for receiver in list(self._receivers):
            try:
                receiver(*args, **kwargs)
            except Exception:
                _logger.exception(f"Receiver of '{self.name}' failed")

    def __len__(self) -> int:
        return len(self._receivers)
