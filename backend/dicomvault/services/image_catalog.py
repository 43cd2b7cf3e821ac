"""
Image catalog store.

Ordered in-memory list of known images with a read / subscribe / update
contract. Listing endpoints refresh it from the database; uploads,
extractions and deletions update it in place. Subscribers receive a fresh
snapshot after every change.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from dicomvault.core.logging import get_logger
from dicomvault.models.metadata import MetadataRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    """One image as shown in listings."""
    id: int
    name: str
    content_type: Optional[str] = None
    patient_id: str = ""
    patient_name: str = ""
    modality: str = ""
    study_instance_uid: str = ""
    upload_date: Optional[datetime] = None


Snapshot = Tuple[CatalogEntry, ...]
Subscriber = Callable[[Snapshot], None]


class ImageCatalog:
    """Observable, ordered collection of catalog entries (newest first)."""

    def __init__(self, entries: Iterable[CatalogEntry] = ()):
        self._entries: List[CatalogEntry] = list(entries)
        self._subscribers: List[Subscriber] = []

    def snapshot(self) -> Snapshot:
        """Immutable view of the current entries."""
        return tuple(self._entries)

    def get(self, image_id: int) -> Optional[CatalogEntry]:
        for entry in self._entries:
            if entry.id == image_id:
                return entry
        return None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register ``callback``; it is called immediately with the current
        snapshot and again after every change.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)
        self._deliver(callback, self.snapshot())

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def replace_all(self, entries: Iterable[CatalogEntry]) -> None:
        self._entries = list(entries)
        self._publish()

    def upsert(self, entry: CatalogEntry) -> None:
        """Replace the entry with the same id in place, or prepend a new one."""
        for index, existing in enumerate(self._entries):
            if existing.id == entry.id:
                self._entries[index] = entry
                break
        else:
            self._entries.insert(0, entry)
        self._publish()

    def apply_metadata(self, image_id: int, record: MetadataRecord) -> bool:
        """
        Refresh the listing fields of one entry from a metadata record.

        Returns:
            False if the image is not in the catalog
        """
        entry = self.get(image_id)
        if entry is None:
            return False

        self.upsert(replace(
            entry,
            patient_id=record.patient_id,
            patient_name=record.patient_name,
            modality=record.modality,
            study_instance_uid=record.study_instance_uid,
        ))
        return True

    def remove(self, image_id: int) -> bool:
        remaining = [entry for entry in self._entries if entry.id != image_id]
        if len(remaining) == len(self._entries):
            return False
        self._entries = remaining
        self._publish()
        return True

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            self._deliver(callback, snapshot)

    def _deliver(self, callback: Subscriber, snapshot: Snapshot) -> None:
        try:
            callback(snapshot)
        except Exception as e:
            logger.error(
                "Catalog subscriber failed",
                extra={
                    "subscriber": getattr(callback, "__qualname__", repr(callback)),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
