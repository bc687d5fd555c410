from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

PRIVATE = "Private"
SHARED = "Shared"
PUBLIC = "Public"


@dataclass
class Dataset:
    automl_id: str
    name: str
    description: str = ""
    owner_id: Optional[str] = None
    collaborators: List[str] = field(default_factory=list)
    is_public: bool = False

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Dataset":
        collabs = row.get("collaborators") or []
        if isinstance(collabs, str):
            collabs = [c.strip() for c in collabs.split(",") if c.strip()]
        return cls(
            automl_id=str(row.get("automl_id") or row.get("automlId") or ""),
            name=str(row.get("name", "")),
            description=str(row.get("description", "")),
            owner_id=row.get("owner_id") or row.get("userId"),
            collaborators=[str(c) for c in collabs],
            is_public=bool(row.get("is_public", row.get("isPublic", False))),
        )

    def is_owner(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and self.owner_id == user_id

    def is_collaborator(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id in self.collaborators

    def sharing_label(self, user_id: Optional[str]) -> Optional[str]:
        if self.is_owner(user_id):
            return PRIVATE
        if self.is_collaborator(user_id):
            return SHARED
        if self.is_public:
            return PUBLIC
        return None


def visible_datasets(rows: Iterable[Dict[str, Any]], user_id: Optional[str]) -> List[Dataset]:
    out: List[Dataset] = []
    for row in rows:
        ds = Dataset.from_record(row)
        if ds.is_public or ds.is_owner(user_id) or ds.is_collaborator(user_id):
            out.append(ds)
    return out
