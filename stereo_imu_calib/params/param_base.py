"""
Parameter Persistence Contract

Shared load/save entry points for parameter types stored in either the
native YAML dialect or the legacy OpenCV FileStorage dialect.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import cv2

from ..data_models import Dialect
from ..exceptions import CalibrationError, MalformedDocumentError, WriteFailureError
from .documents import CvDocumentReader, CvDocumentWriter, read_native_document, write_native_document

PathLike = Union[str, Path]


class ParamBase:
    """
    Base class for persisted parameter sets.

    Subclasses provide the field mapping for each dialect through
    ``_read_native``, ``_build_native``, ``_read_cv`` and ``_write_cv``.
    ``load`` parses into a fresh instance and adopts it only when the whole
    document was read, so a failed load never leaves partial state behind.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__module__)
        self.last_error: Optional[CalibrationError] = None

    # -- field mapping hooks --------------------------------------------------

    def _fresh(self) -> "ParamBase":
        return self.__class__()

    def _read_native(self, document: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _build_native(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _read_cv(self, reader: CvDocumentReader) -> None:
        raise NotImplementedError

    def _write_cv(self, writer: CvDocumentWriter) -> None:
        raise NotImplementedError

    def _adopt(self, other: "ParamBase") -> None:
        """Take over the parsed state of another instance."""
        raise NotImplementedError

    # -- dialect dispatch -----------------------------------------------------

    def load(self, filename: PathLike, dialect: Dialect = Dialect.NATIVE) -> bool:
        """
        Load parameters from a document.

        Args:
            filename: Document path
            dialect: Layout of the document

        Returns:
            True on success. On failure the current state is unchanged and
            ``last_error`` holds the reason.
        """
        try:
            fresh = self._fresh()
            if dialect == Dialect.NATIVE:
                fresh._read_native(read_native_document(filename))
            else:
                with CvDocumentReader(filename) as reader:
                    fresh._read_cv(reader)
        except CalibrationError as e:
            return self._fail(f"Failed to load {self.__class__.__name__} from {filename}", e)
        except cv2.error as e:
            error = MalformedDocumentError(f"OpenCV could not parse {filename}: {e}", {'path': str(filename)})
            return self._fail(f"Failed to load {self.__class__.__name__} from {filename}", error)

        self._adopt(fresh)
        self.last_error = None
        self.logger.info(f"Loaded {self.__class__.__name__} from {filename} ({dialect.value} dialect)")
        return True

    def save(self, filename: PathLike, dialect: Dialect = Dialect.NATIVE) -> bool:
        """
        Write parameters to a document.

        Args:
            filename: Destination path
            dialect: Layout of the document

        Returns:
            True on success, False with ``last_error`` set otherwise
        """
        try:
            if dialect == Dialect.NATIVE:
                write_native_document(filename, self._build_native())
            else:
                writer = CvDocumentWriter()
                self._write_cv(writer)
                writer.publish(filename)
        except CalibrationError as e:
            return self._fail(f"Failed to write {self.__class__.__name__} to {filename}", e)
        except cv2.error as e:
            error = WriteFailureError(f"OpenCV could not serialize {filename}: {e}", {'path': str(filename)})
            return self._fail(f"Failed to write {self.__class__.__name__} to {filename}", error)

        self.last_error = None
        self.logger.info(f"Wrote {self.__class__.__name__} to {filename} ({dialect.value} dialect)")
        return True

    def _fail(self, context: str, error: CalibrationError) -> bool:
        self.last_error = error
        self.logger.error(f"{context}: {error.message}")
        return False

    # -- named entry points ---------------------------------------------------

    def load_from_yaml(self, filename: PathLike) -> bool:
        return self.load(filename, Dialect.NATIVE)

    def write_to_yaml(self, filename: PathLike) -> bool:
        return self.save(filename, Dialect.NATIVE)

    def load_from_cv_yaml(self, filename: PathLike) -> bool:
        return self.load(filename, Dialect.CV)

    def write_to_cv_yaml(self, filename: PathLike) -> bool:
        return self.save(filename, Dialect.CV)
