"""Registry of connected environments.

The registry is a JSON array of :class:`~sfconnect.models.EnvironmentRecord`
objects (camelCase keys) stored at :func:`sfconnect.config.get_registry_path`.
Records are keyed by ``org_id``: connecting an org that is already known
replaces its record in place, everything else is appended.

:func:`merge_environment` holds the merge rule and touches no files;
:class:`EnvironmentStore` wraps it with load and atomic save.

Two ``connect`` runs writing the same registry at once are not coordinated;
the last writer wins.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from sfconnect.config import atomic_write
from sfconnect.exceptions import ConfigurationError
from sfconnect.models import EnvironmentRecord

logger = logging.getLogger(__name__)


def _find_org(records: Sequence[EnvironmentRecord], org_id: Optional[str]) -> Optional[int]:
    if org_id is None:
        return None
    for index, existing in enumerate(records):
        if existing.org_id == org_id:
            return index
    return None


def merge_environment(
    records: Sequence[EnvironmentRecord],
    record: EnvironmentRecord,
) -> list[EnvironmentRecord]:
    """Merge *record* into *records* and return the new list.

    If an existing record has the same non-null ``org_id`` it is replaced
    at the same position. Otherwise, including whenever ``record.org_id``
    is ``None``, *record* is appended. *records* is not modified.
    """
    merged = list(records)
    index = _find_org(merged, record.org_id)
    if index is None:
        merged.append(record)
    else:
        merged[index] = record
    return merged


class EnvironmentStore:
    """File-backed environment registry.

    Args:
        path: Location of the registry JSON file. The file and its parent
            directory are created on first save.

    Example::

        store = EnvironmentStore(get_registry_path())
        replaced = store.upsert(record)
        records = store.load()
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """The filesystem path of the registry file."""
        return self._path

    def load(self) -> list[EnvironmentRecord]:
        """Read all records from disk.

        Returns:
            The stored records in file order; an empty list when the file
            does not exist or is empty.

        Raises:
            ConfigurationError: If the file is not a JSON array of valid
                records. A broken registry is reported rather than
                overwritten.
        """
        if not self._path.is_file():
            return []
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read environment registry {self._path}: {exc}") from exc
        if not text.strip():
            return []

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                f"Environment registry {self._path} is not valid JSON: {exc}"
            ) from exc
        if not isinstance(data, list):
            raise ConfigurationError(
                f"Environment registry {self._path} must contain a JSON array"
            )

        records: list[EnvironmentRecord] = []
        for position, item in enumerate(data):
            try:
                records.append(EnvironmentRecord.model_validate(item))
            except ValidationError as exc:
                raise ConfigurationError(
                    f"Environment registry {self._path} has an invalid entry at "
                    f"position {position}: {exc.error_count()} validation error(s)"
                ) from exc
        return records

    def save(self, records: Sequence[EnvironmentRecord]) -> None:
        """Write *records* atomically with ``0o600`` permissions."""
        data = [record.model_dump(mode="json", by_alias=True) for record in records]
        atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)
        logger.debug("Saved %d environment(s) to %s", len(data), self._path)

    def upsert(self, record: EnvironmentRecord) -> bool:
        """Merge *record* into the registry and persist it.

        Returns:
            ``True`` if a record with the same ``org_id`` was replaced,
            ``False`` if *record* was appended.
        """
        records = self.load()
        replaced = _find_org(records, record.org_id) is not None
        self.save(merge_environment(records, record))
        return replaced
