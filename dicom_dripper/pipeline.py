"""
pipeline.py - Convert DICOM files into display cards, one batch at a time.

For every path the pipeline runs

    read_container → extract_metadata
                   → decode_first_frame → normalize → encode_png_data_url

and assembles a ResultRecord.  Metadata and image are coupled: if either
half fails the file produces no record at all.  Metadata is read first
because it is cheap and fails fast on incomplete headers.

Failures are isolated per file.  Every DripperError is caught, logged and
kept in BatchResult.failures (paired with its path); the batch carries on
and ``had_failure`` is set for the rest of the run.  Each call to
``convert_batch`` starts from an empty BatchResult.
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from dicom_dripper.config import SETTINGS, Settings
from dicom_dripper.container import read_container
from dicom_dripper.decoder import decode_first_frame
from dicom_dripper.encoder import encode_png_data_url
from dicom_dripper.errors import BatchCancelledError, DripperError
from dicom_dripper.metadata import extract_metadata
from dicom_dripper.normalizer import normalize

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResultRecord:
    """One fully populated card for a successfully converted file."""
    file_path: str
    file_name: str
    img_src: str
    study_date: str
    modality: str
    institution_name: str
    patient_name: str

    @property
    def download_name(self) -> str:
        return f"{self.file_name}.png"

    def to_dict(self) -> dict[str, str]:
        """Card shape consumed by the display layer."""
        return {
            "filePath": self.file_path,
            "fileName": self.file_name,
            "imgSrc": self.img_src,
            "studyDate": self.study_date,
            "modality": self.modality,
            "institutionName": self.institution_name,
            "patientName": self.patient_name,
        }


@dataclass(frozen=True)
class FileFailure:
    """A skipped file and the typed error that caused it."""
    path: str
    error: DripperError

    @property
    def reason(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


@dataclass
class BatchResult:
    """Aggregate outcome of one convert_batch call."""
    records: list[ResultRecord] = field(default_factory=list)
    had_failure: bool = False
    failures: list[FileFailure] = field(default_factory=list)
    total_files: int = 0
    elapsed_s: float = 0.0

    def summary(self) -> str:
        lines = [
            "=" * 50,
            "CONVERSION SUMMARY",
            "=" * 50,
            f"Total files          : {self.total_files}",
            f"Cards produced       : {len(self.records)}",
            f"Failed               : {len(self.failures)}",
            f"Total time           : {self.elapsed_s:.2f}s",
        ]
        if self.failures:
            lines.append("\nFailed files:")
            for failure in self.failures:
                lines.append(f"  - {failure.path}: {failure.reason}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "isError": self.had_failure,
            "cards": [record.to_dict() for record in self.records],
        }


# ---------------------------------------------------------------------------
# Single file
# ---------------------------------------------------------------------------

def file_stem(path: Union[str, os.PathLike]) -> str:
    """Final path component without its extension."""
    return os.path.splitext(os.path.basename(os.fspath(path)))[0]


def to_card(file_path: str, settings: Optional[Settings] = None) -> ResultRecord:
    """
    Convert one DICOM file into a ResultRecord.

    Parameters
    ----------
    file_path : str
        Path to the DICOM file, kept verbatim in the record.
    settings : Settings, optional
        Normalizer and encoder settings.  Defaults to the loaded SETTINGS.

    Returns
    -------
    ResultRecord

    Raises
    ------
    DripperError
        Any component failure.  The error carries *file_path*.
    """
    settings = settings or SETTINGS
    try:
        ds = read_container(file_path)
        meta = extract_metadata(ds, path=file_path)
        frame = decode_first_frame(ds, path=file_path)
        image = normalize(frame, use_voi_window=settings.use_voi_window)
        img_src = encode_png_data_url(image, compress_level=settings.png_compress_level)
    except DripperError as exc:
        if exc.path is None:
            exc.path = file_path
        raise

    return ResultRecord(
        file_path=file_path,
        file_name=file_stem(file_path),
        img_src=img_src,
        study_date=meta.study_date,
        modality=meta.modality,
        institution_name=meta.institution_name,
        patient_name=meta.patient_name,
    )


def _attempt(file_path: str, settings: Settings) -> Union[ResultRecord, FileFailure]:
    logger.info("Converting %s", file_path)
    try:
        return to_card(file_path, settings)
    except DripperError as exc:
        logger.warning("Skipping %s: %s", file_path, exc)
        return FileFailure(path=file_path, error=exc)


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

def _record(result: BatchResult, outcome: Union[ResultRecord, FileFailure]) -> None:
    if isinstance(outcome, FileFailure):
        result.failures.append(outcome)
        result.had_failure = True
    else:
        result.records.append(outcome)


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Batch cancelled; discarding partial result.")
        raise BatchCancelledError("Batch cancelled before completion")


def convert_batch(
    file_paths: Iterable[str],
    max_workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    settings: Optional[Settings] = None,
) -> BatchResult:
    """
    Convert every path in *file_paths*, isolating per-file failures.

    Parameters
    ----------
    file_paths : iterable of str
        Paths to convert, in display order.  Not pre-checked.
    max_workers : int, optional
        Thread count.  1 converts sequentially.  Defaults to
        ``settings.max_workers``.
    cancel_event : threading.Event, optional
        When set, remaining files are abandoned and BatchCancelledError
        is raised; no partial BatchResult is returned.
    settings : Settings, optional
        Used for every file in the batch.  Defaults to the loaded SETTINGS.

    Returns
    -------
    BatchResult
        Records in input order (failed files skipped), ``had_failure``
        set if any file was skipped.
    """
    paths = list(file_paths)
    settings = settings or SETTINGS
    if max_workers is None:
        max_workers = settings.max_workers

    result = BatchResult(total_files=len(paths))
    batch_start = time.time()
    logger.info("Starting batch: %d files to convert.", len(paths))

    if max_workers <= 1 or len(paths) <= 1:
        for file_path in paths:
            _check_cancelled(cancel_event)
            _record(result, _attempt(file_path, settings))
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # Futures are consumed in submission order to keep input order.
            futures = [executor.submit(_attempt, p, settings) for p in paths]
            for future in futures:
                if cancel_event is not None and cancel_event.is_set():
                    for pending in futures:
                        pending.cancel()
                    _check_cancelled(cancel_event)
                _record(result, future.result())

    result.elapsed_s = time.time() - batch_start
    logger.info(result.summary())
    return result
