"""Fixed catalogue of the metrics exported for every frontend."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Optional

from .exposition import Labels, MetricKind, MetricRecord, MetricValue
from .frontend.interface import Reading, Scale, Status, relative_to_percent


@dataclass(frozen=True)
class StatusMetric:
    name: str
    flag: Status
    help: str

    def record(self, status: int, labels: Labels) -> MetricRecord:
        return MetricRecord(
            self.name,
            MetricKind.GAUGE,
            MetricValue.boolean((status & self.flag) != 0),
            labels,
            self.help,
        )


@dataclass(frozen=True)
class ReadingMetric:
    name: str
    kind: MetricKind
    reading: Reading
    scale: Scale
    help: str
    convert: Callable[[int], MetricValue]

    def record(self, raw: int, scale: Scale, labels: Labels) -> Optional[MetricRecord]:
        """Build the record, or None if the reading is on another scale than this metric's."""
        if scale != self.scale:
            return None
        return MetricRecord(self.name, self.kind, self.convert(raw), labels, self.help)


def _integer(raw: int) -> MetricValue:
    return MetricValue.integer(raw)


def _percent(raw: int) -> MetricValue:
    return MetricValue.integer(relative_to_percent(raw))


def _decibel(raw: int) -> MetricValue:
    # kernel reports 0.001 dB steps
    return MetricValue.floating(raw / 1000.0)


STATUS_METRICS: List[StatusMetric] = [
    StatusMetric("dvb_fe_has_signal", Status.HAS_SIGNAL, "Frontend found something above the noise level"),
    StatusMetric("dvb_fe_has_carrier", Status.HAS_CARRIER, "Frontend found a DVB signal"),
    StatusMetric("dvb_fe_has_viterbi", Status.HAS_VITERBI, "FEC is stable"),
    StatusMetric("dvb_fe_has_sync", Status.HAS_SYNC, "Frontend found sync bytes"),
    StatusMetric("dvb_fe_has_lock", Status.HAS_LOCK, "Frontend is receiving data"),
]

GAUGE = MetricKind.GAUGE
COUNTER = MetricKind.COUNTER

READING_METRICS: List[ReadingMetric] = [
    # DVB API v3
    ReadingMetric(
        "dvb_fe_ber", GAUGE, Reading.BER, Scale.COUNTER,
        "Bit error rate for the signal currently received/demodulated", _integer,
    ),
    ReadingMetric(
        "dvb_fe_snr_percent", GAUGE, Reading.SNR, Scale.RELATIVE,
        "Signal-to-noise ratio for the signal currently received by the front-end", _percent,
    ),
    ReadingMetric(
        "dvb_fe_signal_strength_percent", GAUGE, Reading.SIGNAL_STRENGTH, Scale.RELATIVE,
        "Signal strength value for the signal currently received by the front-end", _percent,
    ),
    ReadingMetric(
        "dvb_fe_uncorrected_blocks_total", COUNTER, Reading.UNCORRECTED_BLOCKS, Scale.COUNTER,
        "Number of uncorrected blocks detected by the device driver during its lifetime", _integer,
    ),
    # DVB API v5 statistics
    ReadingMetric(
        "dvb_fe_cnr_decibels", GAUGE, Reading.CNR, Scale.DECIBEL,
        "Carrier signal to noise ratio in dB", _decibel,
    ),
    ReadingMetric(
        "dvb_fe_cnr_percent", GAUGE, Reading.CNR, Scale.RELATIVE,
        "Carrier signal to noise ratio relative to the driver's full scale", _percent,
    ),
    ReadingMetric(
        "dvb_fe_signal_level_dbm", GAUGE, Reading.SIGNAL_LEVEL, Scale.DECIBEL,
        "Signal level at the tuner input in dBm", _decibel,
    ),
    ReadingMetric(
        "dvb_fe_signal_level_percent", GAUGE, Reading.SIGNAL_LEVEL, Scale.RELATIVE,
        "Signal level relative to the driver's full scale", _percent,
    ),
    ReadingMetric(
        "dvb_fe_pre_error_bits_total", COUNTER, Reading.PRE_ERROR_BIT_COUNT, Scale.COUNTER,
        "Bit errors before the forward error correction on the inner coding block", _integer,
    ),
    ReadingMetric(
        "dvb_fe_pre_bits_total", COUNTER, Reading.PRE_TOTAL_BIT_COUNT, Scale.COUNTER,
        "Bits received before the inner code block", _integer,
    ),
    ReadingMetric(
        "dvb_fe_post_error_bits_total", COUNTER, Reading.POST_ERROR_BIT_COUNT, Scale.COUNTER,
        "Bit errors after the forward error correction on the inner coding block", _integer,
    ),
    ReadingMetric(
        "dvb_fe_post_bits_total", COUNTER, Reading.POST_TOTAL_BIT_COUNT, Scale.COUNTER,
        "Bits received after the inner coding", _integer,
    ),
    ReadingMetric(
        "dvb_fe_error_blocks_total", COUNTER, Reading.ERROR_BLOCK_COUNT, Scale.COUNTER,
        "Blocks received with errors after the inner coding", _integer,
    ),
    ReadingMetric(
        "dvb_fe_blocks_total", COUNTER, Reading.TOTAL_BLOCK_COUNT, Scale.COUNTER,
        "Blocks received", _integer,
    ),
]
