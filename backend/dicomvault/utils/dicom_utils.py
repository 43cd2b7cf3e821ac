"""
DICOM dataset utilities shared across services.

This module provides common pydicom operations: building datasets,
serializing them to bytes and flattening them into element dictionaries
for the metadata core.
"""

from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Optional

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset, FileDataset
from pydicom.multival import MultiValue
from pydicom.uid import generate_uid
from pydicom.valuerep import PersonName

from dicomvault.core.interfaces.codec_interface import DicomElement, ElementDictionary

# Value representations that carry binary payloads or nested items
SKIPPED_VRS = frozenset({"SQ", "OB", "OD", "OF", "OL", "OV", "OW", "UN"})


def create_file_meta(
    sop_class_uid: str = '1.2.840.10008.5.1.4.1.1.7',  # Secondary Capture
    transfer_syntax_uid: str = '1.2.840.10008.1.2.1'  # Explicit VR Little Endian
) -> Dataset:
    """
    Create DICOM file meta information.

    Args:
        sop_class_uid: SOP Class UID (default: Secondary Capture)
        transfer_syntax_uid: Transfer Syntax UID (default: Explicit VR Little Endian)

    Returns:
        Dataset with file meta information

    Examples:
        >>> file_meta = create_file_meta()
        >>> file_meta.MediaStorageSOPClassUID
        '1.2.840.10008.5.1.4.1.1.7'
    """
    file_meta = Dataset()
    file_meta.MediaStorageSOPClassUID = sop_class_uid
    file_meta.MediaStorageSOPInstanceUID = generate_uid()
    file_meta.TransferSyntaxUID = transfer_syntax_uid
    file_meta.ImplementationClassUID = generate_uid()

    return file_meta


def create_dicom_dataset(
    filename: str,
    file_meta: Optional[Dataset] = None,
    preamble_size: int = 128
) -> FileDataset:
    """
    Create an empty DICOM FileDataset.

    Args:
        filename: Filename for the dataset
        file_meta: Optional file meta information (creates default if None)
        preamble_size: Size of preamble in bytes (default: 128)

    Returns:
        Empty DICOM FileDataset ready to be populated
    """
    if file_meta is None:
        file_meta = create_file_meta()

    ds = FileDataset(
        filename,
        {},
        file_meta=file_meta,
        preamble=b"\0" * preamble_size
    )
    ds.SOPClassUID = file_meta.MediaStorageSOPClassUID
    ds.SOPInstanceUID = file_meta.MediaStorageSOPInstanceUID

    return ds


def set_patient_info(
    ds: FileDataset,
    patient_id: str,
    patient_name: Optional[str] = None,
    birth_date: Optional[str] = None,
    sex: Optional[str] = None
) -> FileDataset:
    """
    Set patient information in DICOM dataset.

    Examples:
        >>> ds = create_dicom_dataset('test.dcm')
        >>> ds = set_patient_info(ds, 'PATIENT001', 'Doe^Jane')
        >>> ds.PatientID
        'PATIENT001'
    """
    ds.PatientID = patient_id[:64]  # LO limit
    ds.PatientName = (patient_name or patient_id)[:64]

    if birth_date:
        ds.PatientBirthDate = birth_date
    if sex:
        ds.PatientSex = sex

    return ds


def set_study_info(
    ds: FileDataset,
    study_uid: Optional[str] = None,
    series_uid: Optional[str] = None,
    study_id: Optional[str] = None
) -> FileDataset:
    """
    Set study and series identifiers, generating UIDs where not given.
    """
    ds.StudyInstanceUID = study_uid or generate_uid()
    ds.SeriesInstanceUID = series_uid or generate_uid()

    if study_id:
        ds.StudyID = study_id

    return ds


def set_series_info(
    ds: FileDataset,
    modality: str = 'OT',
    series_description: Optional[str] = None,
    series_number: int = 1,
    instance_number: int = 1,
    body_part: Optional[str] = None
) -> FileDataset:
    """
    Set series-level information in DICOM dataset.

    Examples:
        >>> ds = create_dicom_dataset('test.dcm')
        >>> ds = set_series_info(ds, modality='CT', series_description='Axial')
        >>> ds.Modality
        'CT'
    """
    ds.Modality = modality
    ds.SeriesNumber = series_number
    ds.InstanceNumber = instance_number

    if series_description:
        ds.SeriesDescription = series_description
    if body_part:
        ds.BodyPartExamined = body_part

    return ds


def set_datetime_info(
    ds: FileDataset,
    dt: Optional[datetime] = None
) -> FileDataset:
    """
    Set study date/time information, using the current time if ``dt`` is None.
    """
    if dt is None:
        dt = datetime.now()

    ds.StudyDate = dt.strftime('%Y%m%d')
    ds.StudyTime = dt.strftime('%H%M%S')

    return ds


def dataset_to_bytes(ds: FileDataset) -> bytes:
    """
    Serialize a dataset in DICOM file format.

    Examples:
        >>> ds = create_dicom_dataset('test.dcm')
        >>> dataset_to_bytes(ds)[128:132]
        b'DICM'
    """
    buffer = BytesIO()
    ds.save_as(buffer, enforce_file_format=True)
    return buffer.getvalue()


def tag_key(element: DataElement) -> str:
    """Canonical upper-case 8-hex key of an element, e.g. ``"0020000D"``."""
    return f"{element.tag.group:04X}{element.tag.element:04X}"


def _plain_value(value: Any) -> Any:
    if isinstance(value, (MultiValue, list, tuple)):
        return [_plain_value(item) for item in value]
    if isinstance(value, PersonName):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1").strip(" \x00")
    if value is None or type(value) in (str, int, float):
        return value
    # DS/IS and other value representations keep their original text
    return str(value)


def dataset_to_elements(ds: Dataset) -> ElementDictionary:
    """
    Flatten the top-level data elements of ``ds`` into an element dictionary.

    Sequence and binary elements are skipped; multi-valued elements become
    lists and person names become strings.

    Args:
        ds: Parsed dataset

    Returns:
        Mapping of upper-case 8-hex tag key to DicomElement
    """
    elements: Dict[str, DicomElement] = {}
    for element in ds:
        if element.VR in SKIPPED_VRS:
            continue
        key = tag_key(element)
        elements[key] = DicomElement(
            tag=key,
            vr=str(element.VR),
            keyword=element.keyword or None,
            value=_plain_value(element.value),
        )
    return elements
