"""dicom-dripper: turn DICOM files into display-ready cards."""

__version__ = "0.1.0"
