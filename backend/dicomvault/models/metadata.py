"""
Canonical DICOM metadata record and the field table that drives it.

``FIELD_TABLE`` is the single source of truth for which DICOM tags feed
which metadata field. Each row names the field, its declared type, the
canonical tag and the keyword alias used as a last-resort lookup key.
:func:`build_record` runs tag resolution and normalization over the table
to turn a parsed element dictionary into a :class:`MetadataRecord`.

@module models.metadata
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from dicomvault.core.logging import get_logger
from dicomvault.utils.normalizers import (
    FieldType,
    coerce_value,
    empty_value,
    normalize,
    normalize_string,
)
from dicomvault.utils.tag_resolver import candidate_keys, resolve_tag

logger = get_logger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    """One row of the canonical field table."""
    name: str
    field_type: FieldType
    tag: Optional[str]
    keywords: Tuple[str, ...]
    domain: str
    # Width of the backing text column; None for numeric fields
    max_length: Optional[int] = None
    keys: Tuple[str, ...] = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "keys", tuple(candidate_keys(self.tag, self.keywords)))

    @property
    def alias(self) -> str:
        """camelCase wire name (e.g. ``studyInstanceUid``)."""
        return to_camel(self.name)

    @property
    def empty(self) -> Any:
        return empty_value(self.field_type)


FIELD_TABLE: Tuple[FieldSpec, ...] = (
    # Patient
    FieldSpec("patient_name", FieldType.STRING, "00100010", ("PatientName",), "patient", 255),
    FieldSpec("patient_id", FieldType.STRING, "00100020", ("PatientID",), "patient", 100),
    FieldSpec("patient_birth_date", FieldType.DATE, "00100030", ("PatientBirthDate",), "patient", 50),
    FieldSpec("patient_sex", FieldType.STRING, "00100040", ("PatientSex",), "patient", 20),
    # Modality
    FieldSpec("modality", FieldType.STRING, "00080060", ("Modality",), "modality", 50),
    FieldSpec("rows", FieldType.INTEGER, "00280010", ("Rows",), "modality"),
    FieldSpec("columns", FieldType.INTEGER, "00280011", ("Columns",), "modality"),
    FieldSpec("image_type", FieldType.STRING, "00080008", ("ImageType",), "modality", 255),
    # Study
    FieldSpec("study_id", FieldType.STRING, "00200010", ("StudyID",), "study", 100),
    FieldSpec("study_instance_uid", FieldType.STRING, "0020000D", ("StudyInstanceUID",), "study", 255),
    FieldSpec("study_date", FieldType.DATE, "00080020", ("StudyDate",), "study", 50),
    FieldSpec("study_time", FieldType.STRING, "00080030", ("StudyTime",), "study", 50),
    # Series
    FieldSpec("series_instance_uid", FieldType.STRING, "0020000E", ("SeriesInstanceUID",), "series", 255),
    FieldSpec("series_number", FieldType.STRING, "00200011", ("SeriesNumber",), "series", 50),
    FieldSpec("series_description", FieldType.STRING, "0008103E", ("SeriesDescription",), "series", 255),
    # Anatomical
    FieldSpec("body_part", FieldType.STRING, "00180015", ("BodyPartExamined",), "anatomical", 100),
    # Image
    FieldSpec("image_id", FieldType.STRING, "00080018", ("SOPInstanceUID",), "image", 500),
    FieldSpec("instance_number", FieldType.STRING, "00200013", ("InstanceNumber",), "image", 50),
    FieldSpec("window_center", FieldType.FLOAT, "00281050", ("WindowCenter",), "image"),
    FieldSpec("window_width", FieldType.FLOAT, "00281051", ("WindowWidth",), "image"),
)

FIELDS_BY_NAME: Dict[str, FieldSpec] = {spec.name: spec for spec in FIELD_TABLE}

# Identifiers that must not drift once persisted
STABLE_IDENTIFIERS: Tuple[str, ...] = ("study_instance_uid", "series_instance_uid")

# Extra keys seen in stored rows and client payloads, matched case-insensitively
_LEGACY_PAYLOAD_KEYS: Dict[str, Tuple[str, ...]] = {
    "patient_birth_date": ("birthdate", "birth_date"),
    "patient_sex": ("sex", "gender"),
    "columns": ("cols",),
    "body_part": ("bodypartexamined", "body_part_examined"),
}


def _payload_keys(spec: FieldSpec) -> Tuple[str, ...]:
    keys = [spec.name, spec.name.replace("_", ""), *_LEGACY_PAYLOAD_KEYS.get(spec.name, ())]
    return tuple(dict.fromkeys(key.lower() for key in keys))


class MetadataRecord(BaseModel):
    """
    Canonical clinical metadata for one DICOM image.

    Always carries every field of ``FIELD_TABLE``; a field is never
    missing, only empty (``""`` for text, ``0`` for numbers). Attributes
    are snake_case; the wire format uses camelCase aliases.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Patient information
    patient_name: str = ""
    patient_id: str = ""
    patient_birth_date: str = ""
    patient_sex: str = ""

    # Modality information
    modality: str = ""
    rows: int = 0
    columns: int = 0
    image_type: str = ""

    # Study information
    study_id: str = ""
    study_instance_uid: str = ""
    study_date: str = ""
    study_time: str = ""

    # Series information
    series_instance_uid: str = ""
    series_number: str = ""
    series_description: str = ""

    # Anatomical information
    body_part: str = ""

    # Image information
    image_id: str = ""
    instance_number: str = ""
    window_center: float = 0.0
    window_width: float = 0.0

    @model_validator(mode="after")
    def _fit_column_widths(self) -> "MetadataRecord":
        """Truncate text longer than its stored column, so records match what is persisted."""
        for spec in FIELD_TABLE:
            value = getattr(self, spec.name)
            if spec.max_length and isinstance(value, str) and len(value) > spec.max_length:
                logger.warning(
                    "Metadata value truncated to column length",
                    extra={"field": spec.alias, "length": len(value), "max_length": spec.max_length}
                )
                setattr(self, spec.name, value[:spec.max_length])
        return self

    @classmethod
    def empty(cls) -> "MetadataRecord":
        """Create an all-empty record."""
        return cls()

    @classmethod
    def from_payload(cls, payload: Optional[Mapping]) -> "MetadataRecord":
        """
        Coerce a stored row or client snapshot into a record.

        Keys match case-insensitively against the field name, its compact
        camelCase form and a few legacy spellings. The first non-empty
        value wins; ``None`` and unparsable values become empty sentinels.

        Args:
            payload: Mapping of field key to value (may be None)

        Returns:
            Fully populated MetadataRecord
        """
        if not payload:
            return cls.empty()

        lowered: Dict[str, Any] = {}
        for key, value in payload.items():
            if isinstance(key, str):
                lowered.setdefault(key.lower(), value)

        values: Dict[str, Any] = {}
        for spec in FIELD_TABLE:
            for key in _payload_keys(spec):
                value = lowered.get(key)
                if value is not None and value != "":
                    values[spec.name] = coerce_value(value, spec.field_type)
                    break
        return cls(**values)

    def value_of(self, name: str) -> Any:
        return getattr(self, name)

    def is_field_empty(self, name: str) -> bool:
        """True when ``name`` still holds its type's empty sentinel."""
        return getattr(self, name) == FIELDS_BY_NAME[name].empty

    def is_blank(self) -> bool:
        """True when every field is empty."""
        return all(self.is_field_empty(spec.name) for spec in FIELD_TABLE)

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with camelCase keys."""
        return self.model_dump(by_alias=True)

    def identity_summary(self) -> Dict[str, str]:
        """Fields shown in image listings."""
        return {
            "patientId": self.patient_id,
            "patientName": self.patient_name,
            "modality": self.modality,
            "studyInstanceUid": self.study_instance_uid,
        }


def build_record(elements: Any, image_ref: Optional[str] = None) -> MetadataRecord:
    """
    Build a candidate record from a parsed element dictionary.

    For every row of ``FIELD_TABLE``: resolve the raw value over the row's
    key spellings, then normalize it to the row's type.

    Args:
        elements: Element dictionary produced by the binary codec
        image_ref: Source reference for this image (upload file name or
            viewer URL). Takes precedence over the SOP Instance UID for
            ``image_id`` when given.

    Returns:
        Fully populated MetadataRecord; all-empty when nothing resolves

    Examples:
        >>> record = build_record({"00080060": {"vr": "CS", "Value": ["CT"]}})
        >>> record.modality
        'CT'
    """
    values: Dict[str, Any] = {}
    for spec in FIELD_TABLE:
        raw = resolve_tag(elements, spec.keys)
        values[spec.name] = normalize(raw, spec.field_type)

    reference = normalize_string(image_ref)
    if reference:
        values["image_id"] = reference

    return MetadataRecord(**values)
