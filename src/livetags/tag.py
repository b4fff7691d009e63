# /src/livetags/tag.py
# Tag - the display-ready domain record

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class Tag:
    """A tag as shown to the user.

    created_at is already formatted for display ("%Y-%m-%d %H:%M") and
    is not meant to be parsed back into an instant.
    """
    id: str
    name: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at
        }
