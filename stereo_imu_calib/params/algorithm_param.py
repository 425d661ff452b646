"""
Algorithm Tuning Parameters

Feature detection and tracking knobs. Every field has a default, so a
document that omits a key leaves that field at its default.
"""

from dataclasses import fields
from typing import Any, Dict

from ..data_models import FeatDetParam, SlaveDetMode, Tracking
from ..exceptions import MalformedDocumentError
from .documents import CvDocumentReader, CvDocumentWriter, to_plain
from .param_base import ParamBase


def _coerce(value: Any, field_type: type, key: str) -> Any:
    """Convert a parsed YAML scalar to the declared field type."""
    if field_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
    elif field_type is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif field_type is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif field_type is SlaveDetMode:
        try:
            return SlaveDetMode(value)
        except ValueError:
            known = ", ".join(mode.value for mode in SlaveDetMode)
            raise MalformedDocumentError(
                f"Unrecognized {key} '{value}', expected one of: {known}", {'key': key}
            )
    raise MalformedDocumentError(
        f"'{key}' must be {field_type.__name__}, got {value!r}", {'key': key}
    )


class AlgorithmParam(ParamBase):
    """Feature detection and tracking parameters."""

    def __init__(self):
        super().__init__()
        self.feat_det_param = FeatDetParam()
        self.tracking = Tracking()

    def _sections(self):
        return (('FeatDetParam', self.feat_det_param), ('Tracking', self.tracking))

    def _adopt(self, other: "AlgorithmParam") -> None:
        self.feat_det_param = other.feat_det_param
        self.tracking = other.tracking

    def _read_native(self, document: Dict[str, Any]) -> None:
        for section_name, block in self._sections():
            section = document.get(section_name) or {}
            if not isinstance(section, dict):
                raise MalformedDocumentError(f"'{section_name}' must be a mapping", {'key': section_name})

            for f in fields(block):
                if f.name in section:
                    key = f"{section_name}.{f.name}"
                    setattr(block, f.name, _coerce(section[f.name], f.type, key))

    def _build_native(self) -> Dict[str, Any]:
        document = {}
        for section_name, block in self._sections():
            section = {}
            for f in fields(block):
                value = getattr(block, f.name)
                section[f.name] = value.value if isinstance(value, SlaveDetMode) else to_plain(value)
            document[section_name] = section
        return document

    def _read_cv(self, reader: CvDocumentReader) -> None:
        for section_name, block in self._sections():
            for f in fields(block):
                if not reader.has(f.name, section_name):
                    continue
                key = f"{section_name}.{f.name}"
                if f.type is SlaveDetMode:
                    value = _coerce(reader.string(f.name, section_name), f.type, key)
                elif f.type is float:
                    value = reader.real(f.name, section_name)
                else:
                    value = _coerce(reader.integer(f.name, section_name), f.type, key)
                setattr(block, f.name, value)

    def _write_cv(self, writer: CvDocumentWriter) -> None:
        for section_name, block in self._sections():
            writer.start_section(section_name)
            for f in fields(block):
                value = getattr(block, f.name)
                if f.type is SlaveDetMode:
                    writer.string(f.name, SlaveDetMode(value).value)
                elif f.type is float:
                    writer.real(f.name, value)
                else:
                    writer.integer(f.name, int(value))
            writer.end_section()
