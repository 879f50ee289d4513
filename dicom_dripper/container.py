"""
container.py - Open a DICOM file and hand back its parsed dataset.

pydicom does the binary parsing: preamble, file meta group, transfer syntax
negotiation and the element stream.  This module only decides which of
pydicom's failures mean "this file is not a usable container" and turns
them into ContainerParseError.
"""

import logging
import os
import struct

import pydicom
from pydicom.dataset import Dataset
from pydicom.errors import InvalidDicomError

from dicom_dripper.errors import ContainerParseError

logger = logging.getLogger(__name__)


def read_container(path: str) -> Dataset:
    """
    Parse the DICOM file at *path*.

    The file is opened and closed inside this call; the returned Dataset
    holds everything in memory, including the PixelData element.

    Parameters
    ----------
    path : str
        File-system path, used exactly as given.

    Returns
    -------
    Dataset
        Queryable by keyword (``ds.StudyDate``, ``"Modality" in ds``).

    Raises
    ------
    ContainerParseError
        Missing or unreadable path, missing DICOM prefix, or a header
        pydicom cannot parse (truncated stream, unknown encoding).
    """
    if not os.path.isfile(path):
        raise ContainerParseError("File not found", path=path)

    try:
        ds = pydicom.dcmread(path)
    except InvalidDicomError as exc:
        raise ContainerParseError(f"Not a DICOM file: {exc}", path=path) from exc
    except OSError as exc:
        raise ContainerParseError(f"Could not read file: {exc}", path=path) from exc
    except (EOFError, ValueError, KeyError, NotImplementedError, struct.error) as exc:
        # Raised from deep inside the element reader on truncated or
        # inconsistently encoded streams.
        raise ContainerParseError(f"Malformed DICOM stream: {exc}", path=path) from exc

    logger.debug(
        "Parsed %s (transfer syntax %s)",
        path, getattr(ds.file_meta, "TransferSyntaxUID", "unknown"),
    )
    return ds
