"""
Serial interface for reading EEG data from a USB adapter.

Frames on the wire:

    [0xAA 0x55][SEQ][CH1_H][CH1_L] ... [CHn_H][CHn_L][CHECKSUM]

Channel values are signed 16-bit big-endian ADC counts; the checksum is the
sum of the sequence and channel bytes modulo 256.
"""

import logging
import threading
import time
from typing import Optional, Sequence

import numpy as np
import serial

from ..core.data_types import Sample, Stream
from .base import SampleSource

logger = logging.getLogger(__name__)

SYNC_BYTES = b'\xAA\x55'


def packet_size(n_channels: int) -> int:
    """Sync (2) + sequence (1) + 16-bit channels + checksum (1)."""
    return 2 + 1 + (n_channels * 2) + 1


def checksum(payload: bytes) -> int:
    return sum(payload) % 256


def parse_packet(data: bytes, n_channels: int, scale_uv: float) -> Optional[tuple[int, np.ndarray]]:
    """
    Parse one framed packet.

    Returns:
        Tuple of (sequence_number, channels in µV), or None if the frame is
        malformed or fails its checksum.
    """
    size = packet_size(n_channels)
    if len(data) != size or data[:2] != SYNC_BYTES:
        return None

    payload = data[2:-1]
    if checksum(payload) != data[-1]:
        return None

    seq = payload[0]
    counts = np.frombuffer(payload[1:], dtype='>i2').astype(np.float64)
    return seq, counts * scale_uv


class SerialSampleSource(SampleSource):
    """
    Reads EEG samples from a USB serial adapter.

    The port must be given explicitly; this class does not probe devices.
    """

    def __init__(
        self,
        port: str,
        n_channels: int,
        sample_rate: float,
        baud_rate: int = 115200,
        scale_uv: float = 0.5,
        name: Optional[str] = None,
        channel_labels: Sequence[str] = (),
    ):
        """
        Initialize the serial reader.

        Args:
            port: Serial port (e.g., '/dev/ttyUSB0' on Linux, 'COM3' on Windows).
            n_channels: Number of EEG channels in each frame.
            sample_rate: Nominal samples per second of the device.
            baud_rate: Communication speed in bits per second.
            scale_uv: Microvolts per ADC count (depends on hardware gain).
            name: Stream name. Defaults to ``serial:<port>``.
            channel_labels: Labels announced on connect.
        """
        super().__init__()
        self.port = port
        self.n_channels = n_channels
        self.sample_rate = sample_rate
        self.baud_rate = baud_rate
        self.scale_uv = scale_uv
        self.name = name or f"serial:{port}"
        self.channel_labels = tuple(channel_labels)

        self._serial: Optional[serial.Serial] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._last_seq: Optional[int] = None
        self.dropped_packets = 0

    def connect(self) -> Stream:
        """
        Open the serial port.

        Raises:
            serial.SerialException: the port cannot be opened.
        """
        if not (self._serial and self._serial.is_open):
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=1.0,
            )
            logger.info("Connected to %s at %d baud", self.port, self.baud_rate)

        self.stream = Stream(
            name=self.name,
            channel_count=self.n_channels,
            sample_rate=self.sample_rate,
            channel_labels=self.channel_labels,
        )
        return self.stream

    def disconnect(self):
        """Close the serial connection."""
        super().disconnect()
        if self._serial and self._serial.is_open:
            self._serial.close()
            logger.info("Disconnected from %s", self.port)
        self._serial = None

    def start_acquisition(self):
        """Start reading EEG data in a background thread."""
        if self._running:
            return
        if not self._serial or not self._serial.is_open:
            self.connect()

        self._running = True
        self._thread = threading.Thread(target=self._read_loop, daemon=True)
        self._thread.start()
        logger.info("Started serial acquisition on %s", self.port)

    def stop_acquisition(self):
        """Stop the data acquisition thread."""
        self._running = False
        if self._thread:
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=2.0)
            self._thread = None
            logger.info("Stopped serial acquisition on %s", self.port)

    def feed(self, buffer: bytearray) -> bytearray:
        """
        Extract and dispatch every complete frame in ``buffer``.

        Returns:
            The unconsumed tail of the buffer.
        """
        size = packet_size(self.n_channels)

        while len(buffer) >= size:
            sync_idx = buffer.find(SYNC_BYTES)

            if sync_idx == -1:
                # No sync found, keep last byte in case it's start of sync
                return buffer[-1:]

            if sync_idx > 0:
                # Discard bytes before sync
                buffer = buffer[sync_idx:]

            if len(buffer) < size:
                break

            parsed = parse_packet(bytes(buffer[:size]), self.n_channels, self.scale_uv)
            if parsed is None:
                # Bad frame: resync from the next byte
                self.dropped_packets += 1
                buffer = buffer[1:]
                continue

            seq, channels = parsed
            if self._last_seq is not None and seq != (self._last_seq + 1) % 256:
                logger.debug("Sequence gap on %s: %d -> %d", self.port, self._last_seq, seq)
            self._last_seq = seq

            self._dispatch_sample(Sample(timestamp=time.monotonic(), channels=channels))
            buffer = buffer[size:]

        return buffer

    def _read_loop(self):
        """Main reading loop - runs in background thread."""
        buffer = bytearray()

        while self._running:
            try:
                if self._serial.in_waiting > 0:
                    buffer.extend(self._serial.read(self._serial.in_waiting))
                buffer = self.feed(buffer)
                time.sleep(0.001)  # Small sleep to prevent CPU spinning

            except serial.SerialException as e:
                logger.error("Read error on %s: %s", self.port, e)
                time.sleep(0.1)
