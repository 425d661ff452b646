"""
Structured Document Handles

Readers and writers for the two calibration document dialects:
the native layout written with PyYAML and the legacy OpenCV FileStorage
layout (``%YAML`` directive, ``!!opencv-matrix`` nodes).
Writers buffer the whole document before publishing it atomically.
"""

import math
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import cv2
import numpy as np
import yaml

from ..data_models import Dialect
from ..exceptions import (
    MalformedDocumentError, MissingFileError, MissingRequiredFieldError, WriteFailureError
)

PathLike = Union[str, Path]

YAML_DIRECTIVE = "%YAML"
CV_LEGACY_HEADER = "%YAML:"  # OpenCV 4 writes "%YAML:1.0", OpenCV 5 "%YAML 1.2"
CV_TAG_PREFIX = "!!opencv-"


def publish_atomically(path: PathLike, text: str) -> None:
    """
    Write text to path through a temporary file and an atomic rename.

    Args:
        path: Destination file
        text: Complete document contents

    Raises:
        WriteFailureError: If the destination cannot be created
    """
    destination = Path(path)
    directory = destination.parent if str(destination.parent) else Path(".")
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            'w', dir=directory, prefix=f".{destination.name}.", suffix=".tmp",
            delete=False, encoding='utf-8'
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, destination)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise WriteFailureError(f"Cannot write {destination}: {e}", {'path': str(destination)})


def detect_dialect(path: PathLike) -> Dialect:
    """
    Guess the dialect of an existing document from its content.

    A document is in the CV dialect when it opens with the OpenCV 4
    ``%YAML:1.0`` header, or with any ``%YAML`` directive and carries
    ``!!opencv-`` tagged nodes. PyYAML never emits a directive, so native
    documents start with a plain key.
    """
    try:
        with open(path, 'r', encoding='utf-8') as file:
            text = file.read()
    except FileNotFoundError:
        raise MissingFileError(f"Document not found: {path}", {'path': str(path)})
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedDocumentError(f"Cannot read {path}: {e}", {'path': str(path)})

    first_line = text.lstrip().split('\n', 1)[0]
    if first_line.startswith(CV_LEGACY_HEADER):
        return Dialect.CV
    if first_line.startswith(YAML_DIRECTIVE) and CV_TAG_PREFIX in text:
        return Dialect.CV
    return Dialect.NATIVE


def read_native_document(path: PathLike) -> Dict[str, Any]:
    """
    Parse a native dialect document.

    Args:
        path: Document path

    Returns:
        Top-level mapping of the document
    """
    try:
        with open(path, 'r', encoding='utf-8') as file:
            document = yaml.safe_load(file)
    except FileNotFoundError:
        raise MissingFileError(f"Document not found: {path}", {'path': str(path)})
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise MalformedDocumentError(f"Error parsing {path}: {e}", {'path': str(path)})
    except OSError as e:
        raise MissingFileError(f"Cannot open {path}: {e}", {'path': str(path)})

    if not isinstance(document, dict):
        raise MalformedDocumentError(f"Document root must be a mapping: {path}", {'path': str(path)})
    return document


def write_native_document(path: PathLike, document: Dict[str, Any]) -> None:
    """Serialize a mapping with PyYAML and publish it atomically."""
    text = yaml.safe_dump(document, default_flow_style=None, sort_keys=False, width=120)
    publish_atomically(path, text)


def to_plain(value: Any) -> Any:
    """Convert numpy arrays and scalars into YAML-safe python values."""
    if isinstance(value, np.ndarray):
        return value.astype(np.float64).tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


def to_array(value: Any, shape: Tuple[int, ...], key: str) -> np.ndarray:
    """
    Convert a parsed (nested) list into a float64 array of the given shape.

    Raises:
        MalformedDocumentError: If the value is not numeric or has the wrong size
    """
    try:
        array = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError):
        raise MalformedDocumentError(f"'{key}' is not a numeric array", {'key': key})
    if array.size != int(np.prod(shape)):
        raise MalformedDocumentError(
            f"'{key}' has {array.size} elements, expected shape {shape}", {'key': key}
        )
    return array.reshape(shape)


class CvDocumentReader:
    """Key lookup over an OpenCV FileStorage document."""

    def __init__(self, path: PathLike):
        self.path = str(path)
        if not Path(self.path).is_file():
            raise MissingFileError(f"Document not found: {self.path}", {'path': self.path})
        try:
            self._fs = cv2.FileStorage(self.path, cv2.FILE_STORAGE_READ)
        except cv2.error as e:
            raise MalformedDocumentError(f"Error parsing {self.path}: {e}", {'path': self.path})
        if not self._fs.isOpened():
            raise MalformedDocumentError(f"Cannot open {self.path} as FileStorage", {'path': self.path})

    def __enter__(self) -> "CvDocumentReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def release(self) -> None:
        self._fs.release()

    def _node(self, key: str, section: Optional[str] = None):
        if section is None:
            return self._fs.getNode(key)
        parent = self._fs.getNode(section)
        if parent.empty() or not parent.isMap():
            return parent
        return parent.getNode(key)

    def has(self, key: str, section: Optional[str] = None) -> bool:
        node = self._node(key, section)
        return not (node.empty() or node.isNone())

    def _require(self, key: str, section: Optional[str] = None):
        if not self.has(key, section):
            name = f"{section}.{key}" if section else key
            raise MissingRequiredFieldError(f"Missing required key '{name}'", {'key': name})
        return self._node(key, section)

    def matrix(self, key: str, shape: Tuple[int, ...]) -> np.ndarray:
        node = self._require(key)
        value = node.mat()
        if value is None:
            raise MalformedDocumentError(f"'{key}' is not an OpenCV matrix", {'key': key})
        return to_array(value, shape, key)

    def vector(self, key: str) -> np.ndarray:
        node = self._require(key)
        value = node.mat()
        if value is None:
            raise MalformedDocumentError(f"'{key}' is not an OpenCV matrix", {'key': key})
        return np.asarray(value, dtype=np.float64).reshape(-1)

    def real(self, key: str, section: Optional[str] = None) -> float:
        node = self._require(key, section)
        if not (node.isReal() or node.isInt()):
            raise MalformedDocumentError(f"'{key}' is not a number", {'key': key})
        return float(node.real())

    def integer(self, key: str, section: Optional[str] = None) -> int:
        value = self.real(key, section)
        if not math.isfinite(value) or value != int(value):
            raise MalformedDocumentError(f"'{key}' is not an integer", {'key': key})
        return int(value)

    def string(self, key: str, section: Optional[str] = None) -> str:
        node = self._require(key, section)
        if not node.isString():
            raise MalformedDocumentError(f"'{key}' is not a string", {'key': key})
        return node.string()

    def is_string(self, key: str, section: Optional[str] = None) -> bool:
        return self.has(key, section) and self._node(key, section).isString()


class CvDocumentWriter:
    """Builds an OpenCV FileStorage document in memory."""

    def __init__(self):
        self._fs = cv2.FileStorage(".yaml", cv2.FILE_STORAGE_WRITE | cv2.FILE_STORAGE_MEMORY)

    def matrix(self, key: str, value: np.ndarray) -> None:
        self._fs.write(key, np.asarray(value, dtype=np.float64))

    def real(self, key: str, value: float) -> None:
        self._fs.write(key, float(value))

    def integer(self, key: str, value: int) -> None:
        self._fs.write(key, int(value))

    def string(self, key: str, value: str) -> None:
        self._fs.write(key, str(value))

    def start_section(self, key: str) -> None:
        self._fs.startWriteStruct(key, cv2.FILE_NODE_MAP)

    def end_section(self) -> None:
        self._fs.endWriteStruct()

    def publish(self, path: PathLike) -> None:
        """Finish the document and write it atomically to path."""
        publish_atomically(path, self._fs.releaseAndGetString())
