"""Card payloads and per-source options.

Payloads are transient: adapters build them per request and the service
hands them to the transport layer via ``to_dict()``.  Adapters may return
either the dataclasses below or plain mappings of the same shape;
``normalize_card`` and ``normalize_options`` convert the latter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ci_board.errors import AdapterError

logger = logging.getLogger(__name__)

LINE_GRAPH = "Line Graph"
MATRIX = "Matrix"
IFRAME = "Iframe"
SINGLE_VALUE = "Single Value"

# (name, can be aggregated) seeded into the store on initialization
DEFAULT_CARD_TYPES: Tuple[Tuple[str, bool], ...] = (
    (LINE_GRAPH, True),
    (MATRIX, False),
    (IFRAME, False),
    (SINGLE_VALUE, True),
)


class MatrixResult(str, Enum):
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    FAILURE = "FAILURE"
    RUNNING = "RUNNING"
    NOTRUN = "NOTRUN"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def coerce(cls, value: Any) -> "MatrixResult":
        """Map any reported state onto the fixed vocabulary."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            logger.debug("Unknown matrix result %r, using UNKNOWN", value)
            return cls.UNKNOWN


@dataclass
class LineGraph:
    labels: List[str] = field(default_factory=list)
    data: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"labels": list(self.labels), "data": list(self.data)}


@dataclass
class MatrixCell:
    result: MatrixResult = MatrixResult.UNKNOWN
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"result": self.result.value}
        if self.url:
            out["url"] = self.url
        return out


@dataclass
class Matrix:
    """Sparse grid of results: values[column][row] -> MatrixCell."""

    columns: List[str] = field(default_factory=list)
    rows: List[str] = field(default_factory=list)
    values: Dict[str, Dict[str, MatrixCell]] = field(default_factory=dict)

    def cell(self, column: str, row: str) -> Optional[MatrixCell]:
        return self.values.get(column, {}).get(row)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": list(self.rows),
            "values": {
                col: {row: cell.to_dict() for row, cell in cells.items()}
                for col, cells in self.values.items()
            },
        }


@dataclass
class IFrame:
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url}


@dataclass
class SingleValue:
    name: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


def _line_graph_from(raw: Mapping[str, Any]) -> LineGraph:
    labels = [str(label) for label in raw.get("labels", [])]
    data = list(raw.get("data", []))
    if len(labels) != len(data):
        raise AdapterError(
            f"Line graph has {len(labels)} labels but {len(data)} values"
        )
    return LineGraph(labels=labels, data=data)


def _matrix_from(raw: Mapping[str, Any]) -> Matrix:
    values: Dict[str, Dict[str, MatrixCell]] = {}
    for col, cells in (raw.get("values") or {}).items():
        values[col] = {}
        for row, cell in cells.items():
            if isinstance(cell, MatrixCell):
                values[col][row] = cell
            else:
                values[col][row] = MatrixCell(
                    result=MatrixResult.coerce(cell.get("result")),
                    url=cell.get("url"),
                )
    return Matrix(
        columns=list(raw.get("columns", [])),
        rows=list(raw.get("rows", [])),
        values=values,
    )


_PAYLOAD_TYPES = {
    LINE_GRAPH: (LineGraph, _line_graph_from),
    MATRIX: (Matrix, _matrix_from),
    IFRAME: (IFrame, lambda raw: IFrame(url=str(raw["url"]))),
    SINGLE_VALUE: (
        SingleValue,
        lambda raw: SingleValue(name=str(raw["name"]), value=raw.get("value")),
    ),
}


def normalize_card(card_kind: str, payload: Any) -> Any:
    """Return *payload* as the dataclass for *card_kind*.

    Payloads for card kinds this module does not define are returned
    unchanged.  Raises AdapterError when the payload has the wrong shape.
    """
    entry = _PAYLOAD_TYPES.get(card_kind)
    if entry is None:
        return payload
    cls, build = entry
    if isinstance(payload, cls):
        return payload
    if isinstance(payload, Mapping):
        try:
            return build(payload)
        except (KeyError, TypeError, AttributeError) as exc:
            raise AdapterError(f"Malformed '{card_kind}' payload: {exc}") from exc
    raise AdapterError(
        f"Expected '{card_kind}' payload, got {type(payload).__name__}"
    )


def card_to_dict(payload: Any) -> Any:
    """Serialize a payload for the transport layer."""
    if hasattr(payload, "to_dict"):
        return payload.to_dict()
    return payload


# ------------------------------------------------------------------
# Options
# ------------------------------------------------------------------

TIME_UNITS = ("m", "h", "d")


@dataclass
class SingleChoice:
    name: str
    label: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "label": self.label, "description": self.description}


@dataclass
class TimeSpan:
    """Time-span field, bounded by its largest selectable unit."""

    name: str
    label: str
    description: str = ""
    max_unit: str = "d"

    def __post_init__(self) -> None:
        if self.max_unit not in TIME_UNITS:
            raise ValueError(
                f"Invalid max_unit '{self.max_unit}' for time span '{self.name}'. "
                f"Expected one of {TIME_UNITS}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "maxUnit": self.max_unit,
        }


@dataclass
class MultiChoice:
    name: str
    label: str
    description: str = ""
    options: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "options": list(self.options),
        }


@dataclass
class Options:
    """Configuration surface of a source; absent groups stay None."""

    singles: Optional[List[SingleChoice]] = None
    timespans: Optional[List[TimeSpan]] = None
    multichoices: Optional[List[MultiChoice]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.singles is not None:
            out["singles"] = [s.to_dict() for s in self.singles]
        if self.timespans is not None:
            out["timespans"] = [t.to_dict() for t in self.timespans]
        if self.multichoices is not None:
            out["multichoices"] = [m.to_dict() for m in self.multichoices]
        return out


def _choices_from(raw: Any, build) -> Optional[List[Any]]:
    if raw is None:
        return None
    return [build(item) for item in raw]


def _time_span_from(raw: Mapping[str, Any]) -> TimeSpan:
    return TimeSpan(
        name=raw["name"],
        label=raw["label"],
        description=raw.get("description", ""),
        max_unit=raw.get("maxUnit", raw.get("max_unit", "d")),
    )


def normalize_options(payload: Any) -> Options:
    """Return *payload* as Options, building it from a plain mapping if needed.

    Raises AdapterError when the payload has the wrong shape.
    """
    if isinstance(payload, Options):
        return payload
    if not isinstance(payload, Mapping):
        raise AdapterError(f"Expected options, got {type(payload).__name__}")
    try:
        return Options(
            singles=_choices_from(
                payload.get("singles"),
                lambda raw: SingleChoice(raw["name"], raw["label"], raw.get("description", "")),
            ),
            timespans=_choices_from(payload.get("timespans"), _time_span_from),
            multichoices=_choices_from(
                payload.get("multichoices"),
                lambda raw: MultiChoice(
                    raw["name"],
                    raw["label"],
                    raw.get("description", ""),
                    list(raw.get("options", [])),
                ),
            ),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise AdapterError(f"Malformed options payload: {exc}") from exc
