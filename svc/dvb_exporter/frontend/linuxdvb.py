# dvb_exporter/frontend/linuxdvb.py
from __future__ import annotations
import ctypes
import errno
import fcntl
import logging
import os
import struct
from typing import Dict, Tuple

from .interface import (
    Failure,
    FrontendDevice,
    FrontendError,
    Outcome,
    Reading,
    Scale,
    Success,
    Unavailable,
)

logger = logging.getLogger(__name__)


# --- ioctl request encoding (asm-generic/ioctl.h) ---------------------------

_IOC_NRSHIFT = 0
_IOC_TYPESHIFT = 8
_IOC_SIZESHIFT = 16
_IOC_DIRSHIFT = 30
_IOC_READ = 2


def _IOR(type_: str, nr: int, size: int) -> int:
    return (
        (_IOC_READ << _IOC_DIRSHIFT)
        | (size << _IOC_SIZESHIFT)
        | (ord(type_) << _IOC_TYPESHIFT)
        | (nr << _IOC_NRSHIFT)
    )


# --- DVB API v5 property structures (linux/dvb/frontend.h) ------------------

class _StatValue(ctypes.Union):
    _pack_ = 1
    _layout_ = "ms"
    _fields_ = [("uvalue", ctypes.c_uint64), ("svalue", ctypes.c_int64)]


class _DtvStats(ctypes.Structure):
    _pack_ = 1
    _layout_ = "ms"
    _anonymous_ = ("u",)
    _fields_ = [("scale", ctypes.c_uint8), ("u", _StatValue)]


MAX_DTV_STATS = 4


class _DtvFeStats(ctypes.Structure):
    _pack_ = 1
    _layout_ = "ms"
    _fields_ = [("len", ctypes.c_uint8), ("stat", _DtvStats * MAX_DTV_STATS)]


class _DtvBuffer(ctypes.Structure):
    _fields_ = [
        ("data", ctypes.c_uint8 * 32),
        ("len", ctypes.c_uint32),
        ("reserved1", ctypes.c_uint32 * 3),
        ("reserved2", ctypes.c_void_p),
    ]


class _DtvPropertyValue(ctypes.Union):
    _fields_ = [("data", ctypes.c_uint32), ("st", _DtvFeStats), ("buffer", _DtvBuffer)]


class _DtvProperty(ctypes.Structure):
    _pack_ = 1
    _layout_ = "ms"
    _fields_ = [
        ("cmd", ctypes.c_uint32),
        ("reserved", ctypes.c_uint32 * 3),
        ("u", _DtvPropertyValue),
        ("result", ctypes.c_int),
    ]


class _DtvProperties(ctypes.Structure):
    _fields_ = [("num", ctypes.c_uint32), ("props", ctypes.POINTER(_DtvProperty))]


FE_READ_STATUS = _IOR("o", 69, 4)
FE_READ_BER = _IOR("o", 70, 4)
FE_READ_SIGNAL_STRENGTH = _IOR("o", 71, 2)
FE_READ_SNR = _IOR("o", 72, 2)
FE_READ_UNCORRECTED_BLOCKS = _IOR("o", 73, 4)
FE_GET_PROPERTY = _IOR("o", 83, ctypes.sizeof(_DtvProperties))

DTV_STAT_SIGNAL_STRENGTH = 62
DTV_STAT_CNR = 63
DTV_STAT_PRE_ERROR_BIT_COUNT = 64
DTV_STAT_PRE_TOTAL_BIT_COUNT = 65
DTV_STAT_POST_ERROR_BIT_COUNT = 66
DTV_STAT_POST_TOTAL_BIT_COUNT = 67
DTV_STAT_ERROR_BLOCK_COUNT = 68
DTV_STAT_TOTAL_BLOCK_COUNT = 69

# reading -> (ioctl request, struct format, scale of the returned value)
_V3_READINGS: Dict[Reading, Tuple[int, str, Scale]] = {
    Reading.BER: (FE_READ_BER, "=I", Scale.COUNTER),
    Reading.SNR: (FE_READ_SNR, "=H", Scale.RELATIVE),
    Reading.SIGNAL_STRENGTH: (FE_READ_SIGNAL_STRENGTH, "=H", Scale.RELATIVE),
    Reading.UNCORRECTED_BLOCKS: (FE_READ_UNCORRECTED_BLOCKS, "=I", Scale.COUNTER),
}

_V5_READINGS: Dict[Reading, int] = {
    Reading.SIGNAL_LEVEL: DTV_STAT_SIGNAL_STRENGTH,
    Reading.CNR: DTV_STAT_CNR,
    Reading.PRE_ERROR_BIT_COUNT: DTV_STAT_PRE_ERROR_BIT_COUNT,
    Reading.PRE_TOTAL_BIT_COUNT: DTV_STAT_PRE_TOTAL_BIT_COUNT,
    Reading.POST_ERROR_BIT_COUNT: DTV_STAT_POST_ERROR_BIT_COUNT,
    Reading.POST_TOTAL_BIT_COUNT: DTV_STAT_POST_TOTAL_BIT_COUNT,
    Reading.ERROR_BLOCK_COUNT: DTV_STAT_ERROR_BLOCK_COUNT,
    Reading.TOTAL_BLOCK_COUNT: DTV_STAT_TOTAL_BLOCK_COUNT,
}

# errnos meaning "this driver does not implement the call"
_UNSUPPORTED_ERRNOS = {errno.EOPNOTSUPP, errno.ENOTTY, errno.ENOSYS}


class DvbFrontend(FrontendDevice):
    """
    Read-only handle on one Linux DVB frontend device node.

    Opening read-only never interferes with a tuning application holding
    the frontend read-write; only the query ioctls are issued.
    """

    def __init__(self, path: str, fd: int) -> None:
        self.path = path
        self.fd = fd

    @classmethod
    def open_ro(cls, path: str) -> "DvbFrontend":
        fd = os.open(path, os.O_RDONLY)
        logger.debug(f"Opened frontend {path} (fd={fd})")
        return cls(path, fd)

    def close(self) -> None:
        if self.fd >= 0:
            os.close(self.fd)
            self.fd = -1

    def __repr__(self) -> str:
        return f"DvbFrontend({self.path!r})"

    # --- queries -----------------------------------------------------------

    def read_status(self) -> int:
        buf = bytearray(4)
        try:
            fcntl.ioctl(self.fd, FE_READ_STATUS, buf)
        except OSError as e:
            raise FrontendError(f"FE_READ_STATUS on {self.path}: {e}") from e
        return struct.unpack("=I", buf)[0]

    def read(self, reading: Reading) -> Outcome:
        if reading in _V3_READINGS:
            return self._read_v3(reading)
        if reading in _V5_READINGS:
            return self._read_stat(reading)
        return Unavailable(f"unknown reading {reading}")

    def _read_v3(self, reading: Reading) -> Outcome:
        request, fmt, scale = _V3_READINGS[reading]
        buf = bytearray(struct.calcsize(fmt))
        try:
            fcntl.ioctl(self.fd, request, buf)
        except OSError as e:
            return self._outcome_for_error(reading, e)
        return Success(struct.unpack(fmt, buf)[0], scale)

    def _read_stat(self, reading: Reading) -> Outcome:
        prop = _DtvProperty(cmd=_V5_READINGS[reading])
        props = _DtvProperties(num=1, props=ctypes.pointer(prop))
        try:
            fcntl.ioctl(self.fd, FE_GET_PROPERTY, props)
        except OSError as e:
            return self._outcome_for_error(reading, e)

        stats = prop.u.st
        if stats.len == 0:
            return Unavailable("no statistics layers")
        # layer 0 is the global value
        stat = stats.stat[0]
        try:
            scale = Scale(stat.scale)
        except ValueError:
            return Unavailable(f"unknown scale {stat.scale}")
        if scale is Scale.NOT_AVAILABLE:
            return Unavailable("scale not available")
        if scale is Scale.DECIBEL:
            return Success(stat.svalue, scale)
        return Success(stat.uvalue, scale)

    def _outcome_for_error(self, reading: Reading, e: OSError) -> Outcome:
        if e.errno in _UNSUPPORTED_ERRNOS:
            return Unavailable(f"{reading.value} not supported by driver")
        return Failure(FrontendError(f"{reading.value} on {self.path}: {e}"))
