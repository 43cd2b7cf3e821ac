"""
Tests for the SQLAlchemy DICOM data repository (persistence gateway).
"""

import pytest

from dicomvault.models.metadata import MetadataRecord


@pytest.fixture
async def stored_image(repository):
    return await repository.create_image(
        file_name="scan.dcm",
        file_size=1024,
        storage_path="/tmp/scan.dcm",
        content_type="application/dicom",
        record=MetadataRecord(patient_name="Doe^Jane", study_date="2023-01-15"),
    )


class TestMetadataGateway:
    """Test suite for gateway get/put."""

    async def test_get_unknown_image_is_empty(self, repository):
        assert (await repository.get("999")).is_blank()

    @pytest.mark.parametrize("image_id", ["abc", "", "-1", "0", None])
    async def test_malformed_ids_read_as_not_found(self, repository, image_id):
        assert (await repository.get(image_id)).is_blank()
        assert not await repository.put(image_id, MetadataRecord(modality="CT"))

    async def test_put_then_get(self, repository, stored_image):
        # Arrange
        record = MetadataRecord(
            patient_name="Doe^Jane",
            study_instance_uid="1.2.3",
            study_date="2023",
            rows=512,
            window_center=-600.5,
            image_id="scan.dcm",
        )

        # Act
        stored = await repository.put(str(stored_image.id), record)
        loaded = await repository.get(str(stored_image.id))

        # Assert
        assert stored
        assert loaded == record

    async def test_put_unknown_image_reports_failure(self, repository):
        assert not await repository.put("999", MetadataRecord(modality="CT"))

    async def test_empty_values_are_stored_as_null(self, repository, stored_image):
        await repository.put(str(stored_image.id), MetadataRecord(modality="CT"))

        row = await repository.get_image(stored_image.id)

        assert row.patient_name is None
        assert row.rows is None
        assert row.window_center is None
        assert row.modality == "CT"


class TestImageCrud:
    """Test suite for image CRUD."""

    async def test_create_seeds_metadata(self, repository, stored_image):
        row = await repository.get_image(stored_image.id)

        assert row.file_name == "scan.dcm"
        assert row.file_size == 1024
        assert row.patient_name == "Doe^Jane"
        assert row.study_date == "2023-01-15"
        assert row.upload_date is not None
        assert row.has_annotations is False

    async def test_list_images_newest_first(self, repository):
        first = await repository.create_image(file_name="a.dcm")
        second = await repository.create_image(file_name="b.dcm")

        rows = await repository.list_images()

        assert [row.id for row in rows] == [second.id, first.id]

    async def test_delete_image(self, repository, stored_image):
        deleted = await repository.delete_image(stored_image.id)

        assert deleted.storage_path == "/tmp/scan.dcm"
        assert await repository.get_image(stored_image.id) is None
        assert await repository.delete_image(stored_image.id) is None

    async def test_touch_last_accessed(self, repository, stored_image):
        assert await repository.touch_last_accessed(stored_image.id)

        row = await repository.get_image(stored_image.id)
        assert row.last_accessed is not None
        assert not await repository.touch_last_accessed(999)

    async def test_update_annotation(self, repository, stored_image):
        row = await repository.update_annotation(
            stored_image.id,
            annotation_type="rectangle",
            annotation_label="lesion",
            annotation_data='{"x": 1}',
        )

        assert row.has_annotations
        assert row.annotation_label == "lesion"

        cleared = await repository.update_annotation(stored_image.id, None, None, None)
        assert not cleared.has_annotations

    async def test_long_values_are_truncated(self, repository, stored_image):
        await repository.put(str(stored_image.id), MetadataRecord(patient_sex="X" * 40))

        row = await repository.get_image(stored_image.id)

        assert row.patient_sex == "X" * 20
