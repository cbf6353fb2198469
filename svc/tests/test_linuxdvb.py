"""
Tests for the Linux DVB frontend driver.

The ioctl calls are replaced by fakes that fill the kernel structures the
way the DVB core does, so no hardware is needed.
"""
import ctypes
import errno
import struct

import pytest

from dvb_exporter.frontend import linuxdvb
from dvb_exporter.frontend.interface import (
    Failure,
    FrontendError,
    Reading,
    Scale,
    Success,
    Unavailable,
)
from dvb_exporter.frontend.linuxdvb import (
    DTV_STAT_CNR,
    FE_GET_PROPERTY,
    FE_READ_BER,
    FE_READ_SIGNAL_STRENGTH,
    FE_READ_SNR,
    FE_READ_STATUS,
    FE_READ_UNCORRECTED_BLOCKS,
    DvbFrontend,
)

is_64bit = ctypes.sizeof(ctypes.c_void_p) == 8


@pytest.fixture
def frontend(tmp_path):
    node = tmp_path / "frontend0"
    node.write_bytes(b"")
    fe = DvbFrontend.open_ro(str(node))
    yield fe
    fe.close()


def _fake_v3(values):
    """ioctl replacement answering v3 requests from {request: (fmt, value)}."""
    def _ioctl(fd, request, buf, mutate_flag=True):
        fmt, value = values[request]
        struct.pack_into(fmt, buf, 0, value)
        return 0
    return _ioctl


def _fake_stat(length, scale, value, seen=None):
    def _ioctl(fd, request, props, mutate_flag=True):
        assert request == FE_GET_PROPERTY
        assert props.num == 1
        prop = props.props[0]
        if seen is not None:
            seen.append(prop.cmd)
        prop.u.st.len = length
        prop.u.st.stat[0].scale = scale
        if scale == Scale.DECIBEL:
            prop.u.st.stat[0].svalue = value
        else:
            prop.u.st.stat[0].uvalue = value
        return 0
    return _ioctl


def _raising(err):
    def _ioctl(fd, request, buf, mutate_flag=True):
        raise OSError(err, "fake")
    return _ioctl


class TestIoctlEncoding:
    def test_v3_request_numbers(self):
        assert FE_READ_STATUS == 0x80046F45
        assert FE_READ_BER == 0x80046F46
        assert FE_READ_SIGNAL_STRENGTH == 0x80026F47
        assert FE_READ_SNR == 0x80026F48
        assert FE_READ_UNCORRECTED_BLOCKS == 0x80046F49

    def test_stats_layout(self):
        assert ctypes.sizeof(linuxdvb._DtvStats) == 9
        assert ctypes.sizeof(linuxdvb._DtvFeStats) == 37

    @pytest.mark.skipif(not is_64bit, reason="pointer size dependent")
    def test_property_layout_64bit(self):
        assert ctypes.sizeof(linuxdvb._DtvProperty) == 76
        assert ctypes.sizeof(linuxdvb._DtvProperties) == 16
        assert FE_GET_PROPERTY == 0x80106F53


class TestReadStatus:
    def test_status_bits(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_v3({FE_READ_STATUS: ("=I", 0x1F)}))
        assert frontend.read_status() == 0x1F

    def test_error_raises(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _raising(errno.EIO))
        with pytest.raises(FrontendError):
            frontend.read_status()


class TestV3Readings:
    def test_values_and_scales(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_v3({
            FE_READ_BER: ("=I", 1234),
            FE_READ_SNR: ("=H", 0xABCD),
            FE_READ_SIGNAL_STRENGTH: ("=H", 0xFFFF),
            FE_READ_UNCORRECTED_BLOCKS: ("=I", 0xFFFFFFFF),
        }))
        assert frontend.read(Reading.BER) == Success(1234, Scale.COUNTER)
        assert frontend.read(Reading.SNR) == Success(0xABCD, Scale.RELATIVE)
        assert frontend.read(Reading.SIGNAL_STRENGTH) == Success(0xFFFF, Scale.RELATIVE)
        assert frontend.read(Reading.UNCORRECTED_BLOCKS) == Success(0xFFFFFFFF, Scale.COUNTER)

    @pytest.mark.parametrize("err", [errno.EOPNOTSUPP, errno.ENOTTY, errno.ENOSYS])
    def test_unsupported_is_unavailable(self, frontend, monkeypatch, err):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _raising(err))
        assert isinstance(frontend.read(Reading.BER), Unavailable)

    def test_io_error_is_failure(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _raising(errno.EIO))
        outcome = frontend.read(Reading.SNR)
        assert isinstance(outcome, Failure)
        assert isinstance(outcome.error, FrontendError)
        assert "snr" in str(outcome.error)


class TestV5Statistics:
    def test_decibel_is_signed(self, frontend, monkeypatch):
        seen = []
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_stat(1, Scale.DECIBEL, -12345, seen))
        assert frontend.read(Reading.CNR) == Success(-12345, Scale.DECIBEL)
        assert seen == [DTV_STAT_CNR]

    def test_counter(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_stat(1, Scale.COUNTER, 2**40))
        assert frontend.read(Reading.TOTAL_BLOCK_COUNT) == Success(2**40, Scale.COUNTER)

    def test_relative(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_stat(2, Scale.RELATIVE, 40000))
        assert frontend.read(Reading.SIGNAL_LEVEL) == Success(40000, Scale.RELATIVE)

    def test_no_layers(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_stat(0, Scale.COUNTER, 5))
        assert isinstance(frontend.read(Reading.ERROR_BLOCK_COUNT), Unavailable)

    def test_scale_not_available(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_stat(1, Scale.NOT_AVAILABLE, 0))
        assert isinstance(frontend.read(Reading.CNR), Unavailable)

    def test_unknown_scale(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _fake_stat(1, 9, 0))
        assert isinstance(frontend.read(Reading.CNR), Unavailable)

    def test_old_driver_without_v5(self, frontend, monkeypatch):
        monkeypatch.setattr(linuxdvb.fcntl, "ioctl", _raising(errno.ENOTTY))
        assert isinstance(frontend.read(Reading.PRE_ERROR_BIT_COUNT), Unavailable)


def test_open_missing_node(tmp_path):
    with pytest.raises(OSError):
        DvbFrontend.open_ro(str(tmp_path / "frontend9"))


def test_close_is_idempotent(tmp_path):
    node = tmp_path / "frontend0"
    node.touch()
    fe = DvbFrontend.open_ro(str(node))
    assert fe.fd >= 0
    fe.close()
    fe.close()
    assert fe.fd == -1
