"""
metadata.py - Read and format the four tags shown on a card.

StudyDate (DA) is stored as YYYYMMDD and displayed as YYYY-MM-DD.  The
value is validated as exactly eight ASCII digits before any slicing, so a
short or non-numeric date raises MetadataError instead of producing a
truncated string.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from pydicom.dataset import Dataset
from pydicom.multival import MultiValue

from dicom_dripper.errors import MetadataError

logger = logging.getLogger(__name__)

STUDY_DATE = "StudyDate"
MODALITY = "Modality"
INSTITUTION_NAME = "InstitutionName"
PATIENT_NAME = "PatientName"

# DICOM pads odd-length text values with a space (or NUL for some writers).
_PADDING = " \x00"


@dataclass(frozen=True)
class CardMetadata:
    """Display strings for one file."""
    study_date: str
    modality: str
    institution_name: str
    patient_name: str


def format_study_date(value: str, path: Optional[str] = None) -> str:
    """
    Reformat a DICOM DA value ``YYYYMMDD`` as ``YYYY-MM-DD``.

    >>> format_study_date("20230615")
    '2023-06-15'
    """
    text = str(value).rstrip(_PADDING)
    if len(text) != 8 or not (text.isascii() and text.isdigit()):
        raise MetadataError(
            f"StudyDate {value!r} is not an 8-digit YYYYMMDD value",
            tag=STUDY_DATE,
            path=path,
        )
    return f"{text[0:4]}-{text[4:6]}-{text[6:8]}"


def read_text(ds: Dataset, keyword: str, path: Optional[str] = None) -> str:
    """
    Return the text of the element *keyword*.

    A present but empty element reads as ``""``.  A multi-valued element is
    joined with the DICOM value delimiter.
    """
    if keyword not in ds:
        raise MetadataError(f"Missing required tag {keyword}", tag=keyword, path=path)

    value = ds[keyword].value
    if value is None:
        return ""
    if isinstance(value, MultiValue):
        return "\\".join(str(v) for v in value)
    if isinstance(value, bytes):
        try:
            return value.decode("ascii").strip(_PADDING)
        except UnicodeDecodeError as exc:
            raise MetadataError(
                f"Tag {keyword} is not text", tag=keyword, path=path,
            ) from exc
    return str(value)


def extract_metadata(ds: Dataset, path: Optional[str] = None) -> CardMetadata:
    """
    Pull StudyDate, Modality, InstitutionName and PatientName from *ds*.

    Raises
    ------
    MetadataError
        Any of the four tags is missing, or StudyDate is malformed.
    """
    study_date = format_study_date(read_text(ds, STUDY_DATE, path), path=path)
    meta = CardMetadata(
        study_date=study_date,
        modality=read_text(ds, MODALITY, path),
        institution_name=read_text(ds, INSTITUTION_NAME, path),
        patient_name=read_text(ds, PATIENT_NAME, path),
    )
    logger.debug("Metadata: %s %s", meta.modality, meta.study_date)
    return meta
