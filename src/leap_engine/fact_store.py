"""
leap_engine/fact_store.py - Working Memory

The fact store holds every asserted fact, assigns fact identities and keeps
a per-kind index so the matcher only ever scans candidates of the kind a
condition names.

Features:
- Monotonic identities, never reused after retraction
- Kind index (an emptied kind bucket is dropped)
- Truth-maintenance metadata per entry
- Snapshot export (JSON/YAML) and seed-file loading
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from .errors import MissingKindError
from .terms import ID_KEY, KIND_KEY, Fact, FactEntry, FactMetadata

logger = logging.getLogger(__name__)


def _check_kind(data: Any) -> str:
    if not isinstance(data, Mapping):
        raise MissingKindError("Fact must be a mapping with a 'kind' field", fact_data=data)
    kind = data.get(KIND_KEY)
    if not isinstance(kind, str) or not kind.strip():
        raise MissingKindError(
            f"Fact '{KIND_KEY}' must be a non-empty string, got {kind!r}", fact_data=data
        )
    return kind


class FactStore:
    """Indexed working memory.

    Example:
        store = FactStore()
        entry = store.assert_fact({"kind": "user", "name": "Alice"})
        entry.fact.id                       # 1
        list(store.get_facts_by_kind("user"))  # [Fact({...})]
        store.retract(entry.fact.id)
    """

    def __init__(self):
        self._counter = 0

        # Primary map: fact id -> entry
        self._entries: dict[int, FactEntry] = {}

        # Kind index: kind -> {fact id -> fact}, insertion ordered
        self._by_kind: dict[str, dict[int, Fact]] = {}

    def assert_fact(
        self,
        data: Mapping[str, Any],
        metadata: FactMetadata | None = None,
    ) -> FactEntry:
        """Store a copy of ``data`` under a fresh identity.

        Args:
            data: Fact fields, including a non-empty string ``kind``
            metadata: Truth-maintenance metadata (defaults to non-logical)

        Returns:
            The stored entry

        Raises:
            MissingKindError: if ``kind`` is absent, empty or not a string
        """
        kind = _check_kind(data)

        self._counter += 1
        fact = Fact(data, self._counter)
        entry = FactEntry(fact=fact, metadata=metadata or FactMetadata())

        self._entries[fact.id] = entry
        self._by_kind.setdefault(kind, {})[fact.id] = fact
        return entry

    def retract(self, fact_id: int) -> FactEntry | None:
        """Remove a fact.

        Returns:
            The removed entry, or None if no fact has that identity
        """
        entry = self._entries.pop(fact_id, None)
        if entry is None:
            return None

        bucket = self._by_kind.get(entry.fact.kind)
        if bucket is not None:
            bucket.pop(fact_id, None)
            if not bucket:
                del self._by_kind[entry.fact.kind]
        return entry

    def get_facts_by_kind(self, kind: str) -> Iterable[Fact]:
        """Live view of the facts of ``kind``; empty for unknown kinds.

        Callers that may assert or retract while iterating must take a
        snapshot first.
        """
        bucket = self._by_kind.get(kind)
        if bucket is None:
            return ()
        return bucket.values()

    def get_entry(self, fact_id: int) -> FactEntry | None:
        return self._entries.get(fact_id)

    def kinds(self) -> list[str]:
        return list(self._by_kind)

    def clear(self) -> None:
        """Drop every fact and restart identities at 1."""
        self._counter = 0
        self._entries.clear()
        self._by_kind.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fact_id: object) -> bool:
        return fact_id in self._entries

    def __iter__(self):
        return iter(list(self._entries.values()))

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Export working memory to a plain dictionary."""
        return {
            "facts": [
                {
                    "fact": _plain(entry.fact),
                    "logical": entry.metadata.logical,
                    "produced_by": entry.metadata.produced_by,
                }
                for entry in self._entries.values()
            ]
        }

    def to_json(self, path: str | Path) -> None:
        """Save snapshot to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    def to_yaml(self, path: str | Path) -> None:
        """Save snapshot to YAML file."""
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def _plain(value: Any) -> Any:
    """Convert facts and tuples into JSON/YAML friendly builtins."""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def read_facts_file(path: str | Path) -> list[dict[str, Any]]:
    """Read fact mappings from a ``.json``, ``.yaml`` or ``.yml`` file.

    The file may hold a list of fact mappings, or a snapshot written by
    FactStore.to_json / to_yaml. Stored identities are discarded.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    with open(path) as f:
        if suffix == ".json":
            data = json.load(f)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported fact file format: {path.suffix!r}")

    if isinstance(data, Mapping):
        data = data.get("facts", [])
    if not isinstance(data, list):
        raise ValueError(f"Fact file {path} must contain a list of facts")

    facts = []
    for item in data:
        if isinstance(item, Mapping) and isinstance(item.get("fact"), Mapping):
            item = item["fact"]
        if not isinstance(item, Mapping):
            raise ValueError(f"Fact file {path} contains a non-mapping entry: {item!r}")
        facts.append({k: v for k, v in item.items() if k != ID_KEY})

    logger.debug(f"Read {len(facts)} facts from {path}")
    return facts
