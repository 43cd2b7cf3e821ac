"""DICOM Vault: DICOM upload, storage and metadata reconciliation service."""

__version__ = "1.0.0"
