from typing import Any, Protocol

# Keys understood by the editor
PANEL_OPEN = "author_panel_open"
LAST_ROLE_IDS = "author_last_role_ids"
LAST_CHANNEL_IDS = "author_last_channel_ids"


class PreferencesStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class InMemoryPreferences:
    def __init__(self, initial: dict | None = None):
        self._values = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
