"""
Integration tests for FastAPI endpoints.
"""

import json

import pytest
from httpx import AsyncClient

from conftest import STUDY_UID

API = "/api/v1/images"


async def _upload(client: AsyncClient, data: bytes, name: str = "scan.dcm", metadata=None):
    form = {"metadata": json.dumps(metadata)} if metadata is not None else {}
    return await client.post(
        API,
        files={"file": (name, data, "application/dicom")},
        data=form,
    )


@pytest.mark.integration
class TestHealthEndpoint:
    """Test suite for health check endpoints."""

    @pytest.mark.parametrize("path", ["/", "/api/health"])
    async def test_health_check(self, async_client: AsyncClient, path):
        """Test health check endpoints return 200."""
        # Act
        response = await async_client.get(path)

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert "timestamp" in data


@pytest.mark.integration
class TestImageEndpoints:
    """Test suite for image upload, retrieval and deletion."""

    async def test_upload_and_read_metadata(self, async_client: AsyncClient, dicom_bytes):
        # Act
        response = await _upload(async_client, dicom_bytes(), metadata={"PatientName": "Client^Name"})

        # Assert
        assert response.status_code == 201
        body = response.json()
        assert body["extraction"]["state"] == "settled"
        assert body["patientName"] == "Client^Name"

        metadata = (await async_client.get(f"{API}/{body['id']}/metadata")).json()
        assert metadata["patientName"] == "Client^Name"
        assert metadata["studyInstanceUid"] == STUDY_UID
        assert metadata["rows"] == 512
        assert metadata["imageId"] == "scan.dcm"

    async def test_list_images(self, async_client: AsyncClient, dicom_bytes):
        await _upload(async_client, dicom_bytes())

        response = await async_client.get(API)

        assert response.status_code == 200
        assert [image["name"] for image in response.json()] == ["scan.dcm"]

    async def test_download_returns_stored_bytes(self, async_client: AsyncClient, dicom_bytes):
        data = dicom_bytes()
        image_id = (await _upload(async_client, data)).json()["id"]

        response = await async_client.get(f"{API}/{image_id}")

        assert response.status_code == 200
        assert response.content == data
        assert response.headers["content-type"] == "application/dicom"
        assert 'filename="scan.dcm"' in response.headers["content-disposition"]

    async def test_delete_then_not_found(self, async_client: AsyncClient, dicom_bytes):
        image_id = (await _upload(async_client, dicom_bytes())).json()["id"]

        response = await async_client.delete(f"{API}/{image_id}")
        assert response.status_code == 200
        assert response.json()["message"] == "Image deleted successfully"

        missing = await async_client.get(f"{API}/{image_id}/metadata")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "IMAGE_NOT_FOUND"

    async def test_invalid_metadata_form(self, async_client: AsyncClient, dicom_bytes):
        response = await async_client.post(
            API,
            files={"file": ("scan.dcm", dicom_bytes(), "application/dicom")},
            data={"metadata": "{not json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_METADATA"

    async def test_unsupported_file_type(self, async_client: AsyncClient):
        response = await async_client.post(
            API,
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "UNSUPPORTED_FILE_TYPE"

    async def test_batch_upload(self, async_client: AsyncClient, dicom_bytes):
        response = await async_client.post(
            f"{API}/batch",
            files=[
                ("files", ("a.dcm", dicom_bytes(), "application/dicom")),
                ("files", ("b.txt", b"nope", "text/plain")),
            ],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["succeeded"] == 1
        assert body["failed"] == 1


@pytest.mark.integration
class TestMetadataEndpoints:
    """Test suite for metadata editing, extraction and annotations."""

    async def test_put_then_extract_fills_only_empty_fields(self, async_client: AsyncClient, dicom_bytes):
        # Arrange
        image_id = (await _upload(async_client, dicom_bytes())).json()["id"]
        edited = await async_client.put(
            f"{API}/{image_id}/metadata",
            json={"patientName": "Edited^Name", "modality": ""},
        )
        assert edited.status_code == 200
        assert edited.json()["modality"] == ""

        # Act
        response = await async_client.post(
            f"{API}/{image_id}/extract",
            headers={"X-Viewer-ID": "viewer-1"},
        )

        # Assert
        assert response.status_code == 200
        report = response.json()
        assert report["state"] == "settled"
        assert report["persisted"] is True
        assert report["metadata"]["patientName"] == "Edited^Name"
        assert report["metadata"]["modality"] == "CT"
        assert "modality" in report["filledFields"]

        stored = (await async_client.get(f"{API}/{image_id}/metadata")).json()
        assert stored["modality"] == "CT"

    async def test_extract_unknown_image(self, async_client: AsyncClient):
        response = await async_client.post(f"{API}/4242/extract")

        assert response.status_code == 404

    async def test_update_annotation(self, async_client: AsyncClient, dicom_bytes):
        image_id = (await _upload(async_client, dicom_bytes())).json()["id"]

        response = await async_client.put(
            f"{API}/{image_id}/annotation",
            json={"annotationType": "arrow", "annotationLabel": "lesion", "annotationData": {"x": 1}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["hasAnnotations"] is True
        assert json.loads(body["annotationData"]) == {"x": 1}


@pytest.mark.integration
class TestRequestHandling:
    """Test suite for request ids and error rendering."""

    async def test_ids_are_echoed(self, async_client: AsyncClient):
        response = await async_client.get(
            API,
            headers={"X-Correlation-ID": "corr-123", "X-Viewer-ID": "viewer-1"},
        )

        assert response.headers["x-correlation-id"] == "corr-123"
        assert response.headers["x-viewer-id"] == "viewer-1"
        assert response.headers["x-request-id"].startswith("req-")

    async def test_correlation_id_is_generated(self, async_client: AsyncClient):
        response = await async_client.get("/api/health")

        assert response.headers["x-correlation-id"]
        assert "x-viewer-id" not in response.headers

    async def test_non_numeric_image_id(self, async_client: AsyncClient):
        response = await async_client.get(f"{API}/abc/metadata")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_unknown_route(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/nothing-here")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "HTTP_404"
