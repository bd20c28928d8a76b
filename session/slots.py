from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class SlotEntry:
    name: str
    value: Any = None
    filled: bool = False


class SlotStore:
    """
    Collected booking fields for one conversation.
    Values are kept JSON-safe (dates as ISO strings).
    """

    def __init__(self, entries: Optional[Dict[str, SlotEntry]] = None):
        self._entries: Dict[str, SlotEntry] = dict(entries or {})

    def fill(self, name: str, value: Any) -> SlotEntry:
        entry = SlotEntry(name=name, value=value, filled=True)
        self._entries[name] = entry
        return entry

    def get(self, name: str, default: Any = None) -> Any:
        entry = self._entries.get(name)
        if entry is None or not entry.filled:
            return default
        return entry.value

    def entry(self, name: str) -> Optional[SlotEntry]:
        return self._entries.get(name)

    def is_filled(self, name: str) -> bool:
        entry = self._entries.get(name)
        return bool(entry and entry.filled)

    def missing(self, required: Iterable[str]) -> List[str]:
        """Required names that are not filled yet, in the order given."""
        return [name for name in required if not self.is_filled(name)]

    def is_complete(self, required: Iterable[str]) -> bool:
        return not self.missing(required)

    def clear(self, names: Optional[Iterable[str]] = None):
        if names is None:
            self._entries.clear()
            return
        for name in names:
            self._entries.pop(name, None)

    def values(self) -> Dict[str, Any]:
        return {name: e.value for name, e in self._entries.items() if e.filled}

    def __len__(self):
        return len(self._entries)

    def to_dict(self):
        return {
            name: {"value": e.value, "filled": e.filled}
            for name, e in self._entries.items()
        }

    @classmethod
    def from_dict(cls, data):
        entries = {}
        for name, raw in (data or {}).items():
            entries[name] = SlotEntry(
                name=name,
                value=raw.get("value"),
                filled=bool(raw.get("filled", False)),
            )
        return cls(entries)
