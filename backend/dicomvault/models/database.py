"""
SQLAlchemy ORM models for DICOM Vault.

One row per uploaded DICOM object: file bookkeeping, the twenty canonical
metadata columns and a single annotation slot.

@module models.database
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, BigInteger, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from dicomvault.models.metadata import FIELDS_BY_NAME


def _width(field_name: str) -> int:
    """Column width of a metadata text field, shared with the record model."""
    return FIELDS_BY_NAME[field_name].max_length


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class DicomData(Base):
    """
    Stored DICOM object and its persisted metadata record.

    Metadata columns are nullable; NULL stands for the field's empty
    sentinel. Dates are kept as normalized text (``YYYY-MM-DD`` or the raw
    value when it was not an 8-character DICOM date).
    """
    __tablename__ = "dicom_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # File information
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    storage_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    content_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    checksum_sha256: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    upload_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    # Patient information
    patient_name: Mapped[Optional[str]] = mapped_column(String(_width("patient_name")), nullable=True)
    patient_id: Mapped[Optional[str]] = mapped_column(String(_width("patient_id")), nullable=True)
    patient_birth_date: Mapped[Optional[str]] = mapped_column(String(_width("patient_birth_date")), nullable=True)
    patient_sex: Mapped[Optional[str]] = mapped_column(String(_width("patient_sex")), nullable=True)

    # Modality information
    modality: Mapped[Optional[str]] = mapped_column(String(_width("modality")), nullable=True)
    rows: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    columns: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    image_type: Mapped[Optional[str]] = mapped_column(String(_width("image_type")), nullable=True)

    # Study information
    study_id: Mapped[Optional[str]] = mapped_column(String(_width("study_id")), nullable=True)
    study_instance_uid: Mapped[Optional[str]] = mapped_column(String(_width("study_instance_uid")), nullable=True)
    study_date: Mapped[Optional[str]] = mapped_column(String(_width("study_date")), nullable=True)
    study_time: Mapped[Optional[str]] = mapped_column(String(_width("study_time")), nullable=True)

    # Series information
    series_instance_uid: Mapped[Optional[str]] = mapped_column(String(_width("series_instance_uid")), nullable=True)
    series_number: Mapped[Optional[str]] = mapped_column(String(_width("series_number")), nullable=True)
    series_description: Mapped[Optional[str]] = mapped_column(String(_width("series_description")), nullable=True)

    # Anatomical information
    body_part: Mapped[Optional[str]] = mapped_column(String(_width("body_part")), nullable=True)

    # Image information
    image_ref: Mapped[Optional[str]] = mapped_column(String(_width("image_id")), nullable=True)
    instance_number: Mapped[Optional[str]] = mapped_column(String(_width("instance_number")), nullable=True)
    window_center: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    window_width: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Annotation
    has_annotations: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    annotation_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    annotation_label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    annotation_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    last_accessed: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<DicomData(id={self.id}, file_name={self.file_name})>"
