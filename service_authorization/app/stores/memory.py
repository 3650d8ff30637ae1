"""
In-memory group and application store.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from shared.logging import get_logger
from shared.errors import NotFoundError
from ..models import Application, Group


class InMemoryStore:
    """Group and application store held in process memory.

    The store can be seeded from a JSON document shaped like
    ``{"groups": [...], "applications": [...]}``. ``hash`` fingerprints the
    seeded content so that caches keyed on it never mix two data sets.
    """

    def __init__(
        self,
        groups: Optional[Iterable[Group]] = None,
        applications: Optional[Iterable[Application]] = None,
        hash: Optional[str] = None,
    ):
        self.logger = get_logger("authorization.stores.memory")
        self._groups: List[Group] = list(groups or [])
        self._applications: List[Application] = list(applications or [])
        self.hash = hash

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "InMemoryStore":
        """Build a store from a decoded JSON document."""
        fingerprint = hashlib.sha256(
            json.dumps(document, sort_keys=True, default=str).encode()
        ).hexdigest()[:16]
        return cls(
            groups=[Group.from_dict(g) for g in document.get("groups") or []],
            applications=[Application.from_dict(a) for a in document.get("applications") or []],
            hash=fingerprint,
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "InMemoryStore":
        """Build a store from a JSON document on disk."""
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        store = cls.from_document(document)
        store.logger.info(
            "Loaded store document",
            path=str(path),
            groups=len(store._groups),
            applications=len(store._applications),
        )
        return store

    async def get_groups(self) -> List[Group]:
        return list(self._groups)

    async def get_group(self, group_id: str) -> Group:
        for group in self._groups:
            if group.group_id == group_id:
                return group
        raise NotFoundError("group", group_id)

    async def get_applications(self) -> List[Application]:
        return list(self._applications)

    async def health_check(self) -> bool:
        return True
