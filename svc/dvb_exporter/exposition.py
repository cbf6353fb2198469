"""
Prometheus text exposition rendering.

A MetricRecord is produced per sample and rendered straight into the
response; nothing is kept between scrapes. Output for one record::

    # HELP dvb_fe_has_lock Frontend is receiving data
    # TYPE dvb_fe_has_lock gauge
    dvb_fe_has_lock{adapter="0",frontend="0"} 1

followed by a blank line.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple, Union


class UnsupportedValueError(TypeError):
    """A metric value is not a bool, int or float."""


class MetricKind(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


class ValueKind(Enum):
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class MetricValue:
    kind: ValueKind
    value: Union[int, float, bool]

    @classmethod
    def integer(cls, value: int) -> "MetricValue":
        return cls(ValueKind.INTEGER, int(value))

    @classmethod
    def floating(cls, value: float) -> "MetricValue":
        return cls(ValueKind.FLOAT, float(value))

    @classmethod
    def boolean(cls, value: bool) -> "MetricValue":
        return cls(ValueKind.BOOLEAN, bool(value))

    @classmethod
    def of(cls, value: object) -> "MetricValue":
        # bool first: it is an int subclass
        if isinstance(value, bool):
            return cls.boolean(value)
        if isinstance(value, int):
            return cls.integer(value)
        if isinstance(value, float):
            return cls.floating(value)
        raise UnsupportedValueError(f"unsupported value type: {type(value).__name__}")

    def render(self) -> str:
        if self.kind is ValueKind.BOOLEAN:
            return "1" if self.value else "0"
        if self.kind is ValueKind.INTEGER:
            return str(self.value)
        return f"{self.value:f}"


Labels = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class MetricRecord:
    name: str
    kind: MetricKind
    value: MetricValue
    labels: Labels = ()
    help: str = ""


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def format_labels(tokens: Sequence[str]) -> str:
    """
    Render alternating key/value tokens as '{k1="v1",k2="v2"}'.

    Returns an empty string for an empty or odd-length list, so a label
    block is either well-formed or absent.
    """
    if not tokens or len(tokens) % 2 != 0:
        return ""
    pairs = [
        f'{tokens[i]}="{_escape_label_value(tokens[i + 1])}"'
        for i in range(0, len(tokens), 2)
    ]
    return "{" + ",".join(pairs) + "}"


def flatten_labels(labels: Labels) -> list[str]:
    tokens: list[str] = []
    for key, value in labels:
        tokens.extend((key, value))
    return tokens


def format_value(value: object) -> str:
    """Render a bool, int or float sample value; anything else raises UnsupportedValueError."""
    if isinstance(value, MetricValue):
        return value.render()
    return MetricValue.of(value).render()


def render_record(record: MetricRecord) -> str:
    header = ""
    if record.help:
        header = f"# HELP {record.name} {record.help}\n"
    header += f"# TYPE {record.name} {record.kind.value}\n"
    labels = format_labels(flatten_labels(record.labels))
    return f"{header}{record.name}{labels} {record.value.render()}\n\n"


def gauge(name: str, value: object, help: str = "", labels: Labels = ()) -> MetricRecord:
    return MetricRecord(name, MetricKind.GAUGE, MetricValue.of(value), labels, help)


def counter(name: str, value: object, help: str = "", labels: Labels = ()) -> MetricRecord:
    return MetricRecord(name, MetricKind.COUNTER, MetricValue.of(value), labels, help)
