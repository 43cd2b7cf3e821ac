"""
Unit tests for the image catalog store.
"""

import pytest

from dicomvault.models.metadata import MetadataRecord
from dicomvault.services.image_catalog import CatalogEntry, ImageCatalog


@pytest.mark.unit
class TestImageCatalog:
    """Test suite for ImageCatalog."""

    @pytest.fixture
    def catalog(self):
        return ImageCatalog([CatalogEntry(id=2, name="b.dcm"), CatalogEntry(id=1, name="a.dcm")])

    def test_subscribe_emits_current_snapshot_immediately(self, catalog):
        received = []

        catalog.subscribe(received.append)

        assert len(received) == 1
        assert [entry.id for entry in received[0]] == [2, 1]

    def test_upsert_prepends_new_entries(self, catalog):
        received = []
        catalog.subscribe(received.append)

        catalog.upsert(CatalogEntry(id=3, name="c.dcm"))

        assert [entry.id for entry in catalog.snapshot()] == [3, 2, 1]
        assert len(received) == 2

    def test_upsert_replaces_in_place(self, catalog):
        catalog.upsert(CatalogEntry(id=1, name="renamed.dcm"))

        assert [entry.name for entry in catalog.snapshot()] == ["b.dcm", "renamed.dcm"]

    def test_apply_metadata_updates_listing_fields(self, catalog):
        record = MetadataRecord(patient_id="P1", patient_name="Doe^Jane", modality="CT", study_instance_uid="1.2.3")

        assert catalog.apply_metadata(1, record)

        entry = catalog.get(1)
        assert entry.patient_id == "P1"
        assert entry.modality == "CT"
        assert entry.study_instance_uid == "1.2.3"
        assert entry.name == "a.dcm"

    def test_apply_metadata_unknown_image(self, catalog):
        assert not catalog.apply_metadata(99, MetadataRecord(modality="CT"))

    def test_remove(self, catalog):
        assert catalog.remove(2)
        assert not catalog.remove(2)
        assert [entry.id for entry in catalog.snapshot()] == [1]

    def test_replace_all(self, catalog):
        catalog.replace_all([CatalogEntry(id=9, name="z.dcm")])

        assert [entry.id for entry in catalog.snapshot()] == [9]

    def test_unsubscribe_stops_notifications(self, catalog):
        received = []
        unsubscribe = catalog.subscribe(received.append)

        unsubscribe()
        catalog.remove(1)

        assert len(received) == 1

    def test_failing_subscriber_does_not_block_others(self, catalog):
        def broken(snapshot):
            raise RuntimeError("render failed")

        received = []
        catalog.subscribe(broken)
        catalog.subscribe(received.append)

        catalog.upsert(CatalogEntry(id=5, name="e.dcm"))

        assert len(received) == 2
        assert catalog.get(5) is not None

    def test_snapshot_is_immutable(self, catalog):
        snapshot = catalog.snapshot()
        catalog.remove(1)

        assert len(snapshot) == 2
