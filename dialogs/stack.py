import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dialogs.errors import EmptyStackError


@dataclass
class DialogFrame:
    """
    One active dialog instance.

    `state` is the dialog-specific step name, `local_slots` holds values
    private to this frame, `options` are the arguments it was begun with.
    """
    dialog_id: str
    state: str = "start"
    local_slots: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    frame_id: Optional[int] = None

    def to_dict(self):
        return {
            "frame_id": self.frame_id,
            "dialog_id": self.dialog_id,
            "state": self.state,
            "local_slots": copy.deepcopy(self.local_slots),
            "options": copy.deepcopy(self.options),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            dialog_id=data["dialog_id"],
            state=data.get("state", "start"),
            local_slots=dict(data.get("local_slots") or {}),
            options=dict(data.get("options") or {}),
            frame_id=data.get("frame_id"),
        )


class DialogStack:
    """
    Per-conversation stack of dialog frames. The bottom frame is the root.
    """

    def __init__(self, frames: Optional[List[DialogFrame]] = None, next_frame_id: int = 1):
        self._frames: List[DialogFrame] = list(frames or [])
        self._next_frame_id = next_frame_id

    def __len__(self):
        return len(self._frames)

    def __iter__(self):
        return iter(list(self._frames))

    @property
    def frames(self) -> List[DialogFrame]:
        return list(self._frames)

    def _assign_id(self, frame: DialogFrame):
        frame.frame_id = self._next_frame_id
        self._next_frame_id += 1

    def push(self, frame: DialogFrame) -> DialogFrame:
        self._assign_id(frame)
        self._frames.append(frame)
        return frame

    def pop(self) -> DialogFrame:
        if not self._frames:
            raise EmptyStackError("pop from an empty dialog stack")
        return self._frames.pop()

    def replace_top(self, frame: DialogFrame) -> DialogFrame:
        if not self._frames:
            raise EmptyStackError("replace_top on an empty dialog stack")
        self._assign_id(frame)
        self._frames[-1] = frame
        return frame

    def top(self) -> Optional[DialogFrame]:
        return self._frames[-1] if self._frames else None

    def root(self) -> Optional[DialogFrame]:
        return self._frames[0] if self._frames else None

    def parent_of_top(self) -> Optional[DialogFrame]:
        return self._frames[-2] if len(self._frames) > 1 else None

    def dialog_ids(self) -> List[str]:
        return [f.dialog_id for f in self._frames]

    def to_dict(self):
        return {
            "next_frame_id": self._next_frame_id,
            "frames": [f.to_dict() for f in self._frames],
        }

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            frames=[DialogFrame.from_dict(f) for f in data.get("frames", [])],
            next_frame_id=data.get("next_frame_id", 1),
        )
