"""
Pytest configuration and shared fixtures for the DICOM Vault test suite.

Provides:
- Isolated settings (temporary SQLite database and upload directory)
- Database engine, repository, storage and codec fixtures
- In-memory DICOM object builders (pydicom)
- An httpx AsyncClient bound to the FastAPI app through ASGITransport

@module tests.conftest
"""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Callable

import pytest
from dependency_injector import providers
from httpx import AsyncClient, ASGITransport

# Ensure project root in path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Override environment for testing (before the app reads its settings)
os.environ["ENVIRONMENT"] = "testing"
os.environ["DEBUG"] = "false"
os.environ["LOG_FILE"] = ""
os.environ["LOG_LEVEL"] = "DEBUG"

from dicomvault.core.config import Settings
from dicomvault.core.database import close_db, create_engine_for, create_session_factory, init_db
from dicomvault.services.dicom_codec import PydicomCodec
from dicomvault.services.metadata_repository import DicomDataRepository
from dicomvault.services.storage_service import LocalStorageService
from dicomvault.utils.dicom_utils import (
    create_dicom_dataset,
    dataset_to_bytes,
    set_datetime_info,
    set_patient_info,
    set_series_info,
    set_study_info,
)

STUDY_UID = "1.2.826.0.1.3680043.8.498.1001"
SERIES_UID = "1.2.826.0.1.3680043.8.498.1002"


def build_dicom_dataset(**overrides):
    """
    Build a small CT dataset without pixel data.

    Keyword overrides set DICOM attributes by keyword; ``None`` removes
    the attribute.
    """
    ds = create_dicom_dataset("test.dcm")
    set_patient_info(ds, "PAT001", "Doe^Jane", birth_date="19800115", sex="F")
    set_study_info(ds, study_uid=STUDY_UID, series_uid=SERIES_UID, study_id="STUDY01")
    set_series_info(
        ds,
        modality="CT",
        series_description="Chest Axial 5mm",
        series_number=3,
        instance_number=7,
        body_part="CHEST"
    )
    set_datetime_info(ds, datetime(2023, 1, 15, 10, 15, 0))
    ds.ImageType = ["ORIGINAL", "PRIMARY", "AXIAL"]
    ds.Rows = 512
    ds.Columns = 512
    ds.WindowCenter = "40"
    ds.WindowWidth = "400"

    for keyword, value in overrides.items():
        if value is None:
            if keyword in ds:
                delattr(ds, keyword)
        else:
            setattr(ds, keyword, value)
    return ds


@pytest.fixture
def dicom_bytes() -> Callable[..., bytes]:
    """Factory returning serialized DICOM objects (see build_dicom_dataset)."""
    def _build(**overrides) -> bytes:
        return dataset_to_bytes(build_dicom_dataset(**overrides))
    return _build


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary database and upload directory."""
    return Settings(
        ENVIRONMENT="testing",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        LOG_FILE="",
        MAX_UPLOAD_SIZE=1_000_000,
        EXTRACTION_MAX_CONCURRENCY=2,
    )


@pytest.fixture
async def db_engine(test_settings: Settings):
    engine = create_engine_for(test_settings.DATABASE_URL)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def repository(db_engine) -> DicomDataRepository:
    return DicomDataRepository(create_session_factory(db_engine))


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorageService:
    return LocalStorageService(tmp_path / "storage")


@pytest.fixture
def codec() -> PydicomCodec:
    return PydicomCodec()


@pytest.fixture
async def async_client(test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for the FastAPI app, backed by an isolated database.

    ASGITransport does not run the lifespan, so tables are created here.
    """
    from dicomvault.main import app

    container = app.container
    container.config.override(providers.Object(test_settings))
    container.reset_singletons()
    await init_db(container.db_engine())

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await close_db(container.db_engine())
    container.config.reset_override()
    container.reset_singletons()
