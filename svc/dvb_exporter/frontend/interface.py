# dvb_exporter/frontend/interface.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, IntEnum, IntFlag
from typing import Protocol, Union


class FrontendError(Exception):
    """A frontend query failed (ioctl error, closed handle, ...)."""


class Status(IntFlag):
    """fe_status bits reported by FE_READ_STATUS."""
    HAS_SIGNAL = 0x01
    HAS_CARRIER = 0x02
    HAS_VITERBI = 0x04
    HAS_SYNC = 0x08
    HAS_LOCK = 0x10
    TIMEDOUT = 0x20
    REINIT = 0x40


class Scale(IntEnum):
    """Kernel fecap_scale_params."""
    NOT_AVAILABLE = 0
    DECIBEL = 1     # 0.001 dB units
    RELATIVE = 2    # 0..65535 full scale
    COUNTER = 3


class Reading(Enum):
    # DVB API v3 ioctls
    BER = "ber"
    SNR = "snr"
    SIGNAL_STRENGTH = "signal_strength"
    UNCORRECTED_BLOCKS = "uncorrected_blocks"
    # DVB API v5 statistics
    CNR = "cnr"
    SIGNAL_LEVEL = "signal_level"
    PRE_ERROR_BIT_COUNT = "pre_error_bit_count"
    PRE_TOTAL_BIT_COUNT = "pre_total_bit_count"
    POST_ERROR_BIT_COUNT = "post_error_bit_count"
    POST_TOTAL_BIT_COUNT = "post_total_bit_count"
    ERROR_BLOCK_COUNT = "error_block_count"
    TOTAL_BLOCK_COUNT = "total_block_count"


@dataclass(frozen=True)
class Success:
    value: int
    scale: Scale


@dataclass(frozen=True)
class Unavailable:
    reason: str = ""


@dataclass(frozen=True)
class Failure:
    error: Exception


Outcome = Union[Success, Unavailable, Failure]


UINT16_MAX = 0xFFFF


def as_uint16(value: int) -> int:
    """
    Reinterpret a 16-bit hardware value as unsigned.

    Accepts anything representable in 16 bits either signed (-32768..-1) or
    unsigned (0..65535) and returns the unsigned value with the same bit
    pattern, so -1 becomes 65535. Raises ValueError outside that range.
    """
    if not -0x8000 <= value <= UINT16_MAX:
        raise ValueError(f"value {value} does not fit in 16 bits")
    return value & UINT16_MAX


def relative_to_percent(raw: int) -> int:
    """Convert a 0..65535 relative reading to a truncated integer percentage."""
    return as_uint16(raw) * 100 // UINT16_MAX


class FrontendDevice(Protocol):
    """
    Minimal interface the exporter needs from one opened DVB frontend.
    One instance represents one /dev/dvb/adapterN/frontendM handle.
    """

    def read_status(self) -> int:
        """Return the fe_status bitmask. Raises FrontendError on failure."""
        ...

    def read(self, reading: Reading) -> Outcome:
        """
        Query one named reading.

        Hardware errors are reported as Failure, unsupported or not yet
        measured readings as Unavailable.
        """
        ...
