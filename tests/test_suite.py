"""
Comprehensive Test Suite for EEG Stream.

Run with: pytest tests/ -v
"""

import sys
import threading
import time
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


FS = 250.0


def make_stream(n_channels=1, sample_rate=FS, name="Test EEG"):
    from eegstream.core.data_types import Stream

    return Stream(name=name, channel_count=n_channels, sample_rate=sample_rate)


def amplitude(values):
    """Sinusoid amplitude implied by the RMS of ``values``."""
    return float(np.sqrt(2) * np.sqrt(np.mean(np.square(values))))


def filtered_amplitude(frequency, settle_seconds=4.0, measure_seconds=2.0, settings=None):
    """Run a 100 µV sinusoid through a fresh filter stage and measure the tail."""
    from eegstream.hardware.simulator import sinusoid
    from eegstream.processing.filters import DigitalFilterStage

    stage = DigitalFilterStage(make_stream(), settings)
    n_settle = int(settle_seconds * FS)
    n_total = n_settle + int(measure_seconds * FS)
    wave = sinusoid(frequency, 100.0, FS, n_total)
    out = stage.filter_chunk(wave[:, np.newaxis])[:, 0]
    return amplitude(out[n_settle:])


class TestStream:
    """Tests for stream metadata and samples."""

    def test_labels_default_from_device_name(self):
        stream = make_stream(n_channels=8, name="UN-2023.05.42 Unicorn")
        assert stream.channel_labels == ("Fz", "C3", "Cz", "C4", "Pz", "PO7", "Oz", "PO8")

    def test_invalid_stream_rejected(self):
        from eegstream.core.data_types import Stream
        from eegstream.core.errors import StreamConfigurationError

        with pytest.raises(StreamConfigurationError):
            Stream(name="bad", channel_count=0, sample_rate=FS)
        with pytest.raises(StreamConfigurationError):
            Stream(name="bad", channel_count=2, sample_rate=0)
        with pytest.raises(StreamConfigurationError):
            Stream(name="bad", channel_count=2, sample_rate=FS, channel_labels=("A",))

    def test_samples_for(self):
        assert make_stream().samples_for(4.0) == 1000

    def test_sample_is_read_only(self):
        from eegstream.core.data_types import Sample

        source = np.array([1.0, 2.0])
        sample = Sample(timestamp=1, channels=source)
        source[0] = 99.0

        assert sample.channels[0] == 1.0
        assert isinstance(sample.timestamp, float)
        with pytest.raises(ValueError):
            sample.channels[0] = 5.0

    def test_sample_rejects_multi_row_channels(self):
        from eegstream.core.data_types import Sample
        from eegstream.core.errors import ValidationError

        with pytest.raises(ValidationError):
            Sample(timestamp=0.0, channels=np.zeros((2, 4)))
        assert Sample(timestamp=0.0, channels=3.0).channel_count == 1


class TestChannelLabels:
    """Tests for default channel labels."""

    def test_unknown_device_uses_generic_names(self):
        from eegstream.core.channel_map import default_channel_labels

        assert default_channel_labels("My Amplifier", 3) == ["Ch1", "Ch2", "Ch3"]

    def test_labels_padded_and_truncated(self):
        from eegstream.core.channel_map import default_channel_labels

        assert default_channel_labels("Muse-1234", 6) == ["TP9", "AF7", "AF8", "TP10", "Ch5", "Ch6"]
        assert default_channel_labels("Emotiv EPOC", 2) == ["AF3", "F7"]

    def test_openbci_wide_layout(self):
        from eegstream.core.channel_map import default_channel_labels

        labels = default_channel_labels("OpenBCI Cyton Daisy", 16)
        assert len(labels) == 16
        assert labels[7] == "Cz"

    def test_device_info(self):
        from eegstream.core.channel_map import get_device_info

        assert get_device_info("Unicorn")[1] == "Unicorn Hybrid Black"
        assert get_device_info("whatever") == ("Unknown Manufacturer", "EEG Device")


class TestSampleBuffer:
    """Tests for the bounded sample buffer."""

    def test_buffer_bound(self):
        from eegstream.core.buffer import SampleBuffer
        from eegstream.core.data_types import Sample

        buffer = SampleBuffer(make_stream(), capacity=10)
        for i in range(15):
            buffer.push(Sample(timestamp=i, channels=[float(i)]))
            assert len(buffer) <= 10

        recent = buffer.recent(10)
        assert [s.timestamp for s in recent] == [float(i) for i in range(5, 15)]
        assert buffer.is_full
        assert buffer.latest().timestamp == 14.0

    def test_recent_fewer_than_requested(self):
        from eegstream.core.buffer import SampleBuffer
        from eegstream.core.data_types import Sample

        buffer = SampleBuffer(make_stream(), capacity=10)
        buffer.push(Sample(timestamp=0, channels=[1.0]))

        assert len(buffer.recent(5)) == 1
        assert buffer.recent(0) == []

    def test_window_requires_enough_data(self):
        from eegstream.core.buffer import SampleBuffer
        from eegstream.core.data_types import Sample
        from eegstream.core.errors import InsufficientDataError

        buffer = SampleBuffer(make_stream(n_channels=2), capacity=10)
        for i in range(3):
            buffer.push(Sample(timestamp=i, channels=[i, -i]))

        with pytest.raises(InsufficientDataError) as excinfo:
            buffer.window(4)
        assert excinfo.value.required == 4
        assert excinfo.value.available == 3

        timestamps, data = buffer.window(3)
        assert data.shape == (3, 2)
        assert list(timestamps) == [0.0, 1.0, 2.0]

    def test_rejects_bad_samples(self):
        from eegstream.core.buffer import SampleBuffer
        from eegstream.core.data_types import Sample
        from eegstream.core.errors import ValidationError

        buffer = SampleBuffer(make_stream(), capacity=10)
        buffer.push(Sample(timestamp=5, channels=[1.0]))

        with pytest.raises(ValidationError):
            buffer.push(Sample(timestamp=6, channels=[1.0, 2.0]))
        with pytest.raises(ValidationError):
            buffer.push(Sample(timestamp=4, channels=[1.0]))

        # Equal timestamps are accepted
        buffer.push(Sample(timestamp=5, channels=[2.0]))
        assert len(buffer) == 2

    def test_nan_timestamp_does_not_break_ordering(self):
        from eegstream.core.buffer import SampleBuffer
        from eegstream.core.data_types import Sample
        from eegstream.core.errors import ValidationError

        buffer = SampleBuffer(make_stream(), capacity=10)
        buffer.push(Sample(timestamp=5.0, channels=[1.0]))

        with pytest.raises(ValidationError):
            buffer.push(Sample(timestamp=float("nan"), channels=[1.0]))
        with pytest.raises(ValidationError):
            buffer.push(Sample(timestamp=float("inf"), channels=[1.0]))
        with pytest.raises(ValidationError):
            buffer.push(Sample(timestamp=1.0, channels=[1.0]))

        assert [s.timestamp for s in buffer.recent(10)] == [5.0]

    def test_default_capacity(self):
        from eegstream.core.buffer import SampleBuffer

        assert SampleBuffer(make_stream()).capacity == 1000


class TestFilters:
    """Tests for signal filtering."""

    def test_filter_determinism(self):
        from eegstream.core.data_types import Sample
        from eegstream.processing.filters import DigitalFilterStage

        rng = np.random.default_rng(7)
        data = rng.normal(0, 30, size=(500, 4))
        stream = make_stream(n_channels=4)

        first = DigitalFilterStage(stream)
        second = DigitalFilterStage(stream)
        out_first = [first.filter_sample(Sample(i / FS, row)).channels for i, row in enumerate(data)]
        out_second = [second.filter_sample(Sample(i / FS, row)).channels for i, row in enumerate(data)]

        assert np.allclose(out_first, out_second, atol=1e-9, rtol=0)

    def test_sample_and_chunk_agree(self):
        from eegstream.core.data_types import Sample
        from eegstream.processing.filters import DigitalFilterStage

        rng = np.random.default_rng(3)
        data = rng.normal(0, 30, size=(300, 2))
        stream = make_stream(n_channels=2)

        by_sample = DigitalFilterStage(stream)
        by_chunk = DigitalFilterStage(stream)
        out_sample = np.vstack([by_sample.filter_sample(Sample(i, row)).channels
                                for i, row in enumerate(data)])
        out_chunk = np.vstack([by_chunk.filter_chunk(data[:100]), by_chunk.filter_chunk(data[100:])])

        assert np.allclose(out_sample, out_chunk, atol=1e-9)

    def test_filtered_sample_keeps_timestamp(self):
        from eegstream.core.data_types import Sample
        from eegstream.processing.filters import DigitalFilterStage

        stage = DigitalFilterStage(make_stream(n_channels=3))
        filtered = stage.filter_sample(Sample(12.5, [1.0, 2.0, 3.0]))

        assert filtered.timestamp == 12.5
        assert filtered.channel_count == 3

    def test_bandpass_rejects_slow_drift(self):
        # 0.2 Hz has a long transient: settle 40 s, measure 20 s (4 whole periods)
        assert filtered_amplitude(0.2, settle_seconds=40.0, measure_seconds=20.0) < 10

    def test_bandpass_passes_alpha(self):
        assert filtered_amplitude(10.0) > 89

    def test_bandpass_rejects_high_frequency(self):
        assert filtered_amplitude(80.0) < 10

    def test_notch_section_removes_line_noise_and_passes_neighbours(self):
        # Measured on the notch section alone: 45 Hz is outside the 1-40 Hz passband
        from eegstream.hardware.simulator import sinusoid
        from eegstream.processing.filters import SOSFilterBank, design_notch

        def notched(frequency):
            bank = SOSFilterBank(design_notch(50.0, 2.0, FS), n_channels=1)
            wave = sinusoid(frequency, 100.0, FS, 1000)
            return amplitude(bank.process(wave[:, np.newaxis])[500:, 0])

        assert notched(50.0) < 10
        assert notched(45.0) > 89
        assert notched(55.0) > 89

    def test_stage_removes_line_noise(self):
        from eegstream.processing.filters import FilterSettings

        assert filtered_amplitude(50.0) < 10
        assert filtered_amplitude(60.0, settings=FilterSettings(notch_freq=60.0)) < 10

    def test_notch_disabled(self):
        from eegstream.processing.filters import DigitalFilterStage, FilterSettings

        stage = DigitalFilterStage(make_stream(), FilterSettings(notch_freq=None))
        assert stage.notch is None

    def test_invalid_design_rejected(self):
        from eegstream.core.errors import StreamConfigurationError
        from eegstream.processing.filters import DigitalFilterStage, FilterSettings

        with pytest.raises(StreamConfigurationError):
            DigitalFilterStage(make_stream(), FilterSettings(bandpass_low=40, bandpass_high=1))
        with pytest.raises(StreamConfigurationError):
            DigitalFilterStage(make_stream(sample_rate=60.0))

    def test_clamp_limits_artifacts(self):
        from eegstream.processing.filters import DigitalFilterStage

        stage = DigitalFilterStage(make_stream())
        data = np.zeros((10, 1))
        data[5, 0] = 5000.0
        stage.filter_chunk(data)

        assert stage.clipped_count == 1

    def test_rejected_sample_leaves_state_untouched(self):
        from eegstream.core.data_types import Sample
        from eegstream.core.errors import ValidationError
        from eegstream.processing.filters import DigitalFilterStage

        stream = make_stream(n_channels=2)
        clean = DigitalFilterStage(stream)
        disturbed = DigitalFilterStage(stream)

        samples = [Sample(i, [np.sin(i), np.cos(i)]) for i in range(50)]
        for i, sample in enumerate(samples):
            expected = clean.filter_sample(sample)
            if i == 20:
                with pytest.raises(ValidationError):
                    disturbed.filter_sample(Sample(i, [np.nan, 1.0]))
                with pytest.raises(ValidationError):
                    disturbed.filter_sample(Sample(i, [1.0]))
            actual = disturbed.filter_sample(sample)
            assert np.allclose(expected.channels, actual.channels, atol=1e-12)

        with pytest.raises(ValidationError):
            disturbed.filter_sample(Sample(10, [0.0, 0.0]))

    def test_nan_timestamp_does_not_break_ordering(self):
        from eegstream.core.data_types import Sample
        from eegstream.core.errors import ValidationError
        from eegstream.processing.filters import DigitalFilterStage

        stage = DigitalFilterStage(make_stream())
        stage.filter_sample(Sample(5.0, [1.0]))

        with pytest.raises(ValidationError):
            stage.filter_sample(Sample(float("nan"), [1.0]))
        with pytest.raises(ValidationError):
            stage.filter_sample(Sample(1.0, [1.0]))
        assert stage.filter_sample(Sample(5.0, [1.0])).timestamp == 5.0

    def test_reset_state(self):
        from eegstream.processing.filters import DigitalFilterStage

        stage = DigitalFilterStage(make_stream())
        data = np.random.default_rng(1).normal(0, 20, size=(100, 1))
        first = stage.filter_chunk(data)
        stage.reset_state()
        second = stage.filter_chunk(data)

        assert np.allclose(first, second)


class TestSpectralAnalysis:
    """Tests for spectral band power."""

    def test_alpha_power_of_pure_sinusoid(self):
        from eegstream.hardware.simulator import sinusoid
        from eegstream.processing.spectral import SpectralAnalyzer

        analyzer = SpectralAnalyzer(sample_rate=FS, window_seconds=1.0)
        estimate = analyzer.compute_band_power(sinusoid(10.0, 50.0, FS, 250), channel=3, timestamp=1.0)

        assert estimate.alpha == pytest.approx(50.0 ** 2 / 2, rel=1e-6)
        assert estimate.channel == 3
        assert estimate.timestamp == 1.0
        assert max(estimate.to_dict(), key=estimate.to_dict().get) == "alpha"

    def test_non_negative_and_finite(self):
        from eegstream.processing.spectral import SpectralAnalyzer

        analyzer = SpectralAnalyzer(sample_rate=FS)
        rng = np.random.default_rng(0)
        cases = [
            rng.normal(0, 50, size=(250, 4)),
            np.full((250, 4), -1e300),
            np.full((250, 4), 1e-300),
            np.vstack([np.full((125, 4), 1.7e308), np.full((125, 4), -1.7e308)]),
        ]

        for data in cases:
            for estimate in analyzer.analyze(data):
                values = np.array(list(estimate.to_dict().values()))
                assert np.all(values >= 0)
                assert np.all(np.isfinite(values))

    def test_zero_window_gives_zero_power(self):
        from eegstream.processing.spectral import SpectralAnalyzer

        analyzer = SpectralAnalyzer(sample_rate=FS)
        for estimate in analyzer.analyze(np.zeros((250, 3))):
            assert estimate.total() == 0.0
            assert all(v == 0.0 for v in estimate.relative().values())

    def test_not_enough_samples(self):
        from eegstream.processing.spectral import SpectralAnalyzer

        analyzer = SpectralAnalyzer(sample_rate=FS)
        assert analyzer.analyze(np.zeros((249, 2))) is None
        assert analyzer.compute_spectrum(np.zeros(10)) is None

    def test_spectrum_peak(self):
        from eegstream.hardware.simulator import sinusoid
        from eegstream.processing.spectral import SpectralAnalyzer

        analyzer = SpectralAnalyzer(sample_rate=FS)
        freqs, power = analyzer.compute_spectrum(sinusoid(20.0, 10.0, FS, 500))

        assert len(freqs) == len(power) == 126
        assert freqs[np.argmax(power)] == pytest.approx(20.0)

    def test_window_too_short(self):
        from eegstream.core.errors import StreamConfigurationError
        from eegstream.processing.spectral import SpectralAnalyzer

        with pytest.raises(StreamConfigurationError):
            SpectralAnalyzer(sample_rate=FS, window_seconds=0.001)
        assert SpectralAnalyzer(sample_rate=2.0, window_seconds=1.0).n_samples == 2

    def test_band_power_tracker(self):
        from eegstream.core.data_types import BandPowerEstimate
        from eegstream.processing.spectral import BandPowerTracker

        tracker = BandPowerTracker(history_seconds=2.0, update_rate=5.0)
        for i in range(20):
            tracker.add(BandPowerEstimate(i * 0.2, 0, 1.0, 2.0, float(i), 4.0, 5.0))

        timestamps, values = tracker.get_history("alpha", channel=0)
        assert len(values) == 10
        assert values[-1] == 19.0
        assert tracker.get_trend("alpha") == pytest.approx(1.0)
        assert tracker.get_average("alpha", window=2) == pytest.approx(18.5)
        assert tracker.channels() == [0]

        tracker.clear()
        assert tracker.latest(0) is None


class TestClassifier:
    """Tests for mental state classification."""

    @staticmethod
    def estimate(alpha, beta, theta):
        from eegstream.core.data_types import BandPowerEstimate

        return BandPowerEstimate(timestamp=2.0, channel=1, delta=0.0, theta=theta,
                                 alpha=alpha, beta=beta, gamma=0.0)

    def test_deep_state(self):
        from eegstream.core.data_types import MentalState
        from eegstream.processing.classifier import StateClassifier

        result = StateClassifier().classify(self.estimate(alpha=30, beta=10, theta=20))
        assert result.label == MentalState.DEEP_STATE
        assert result.quality_score == 90
        assert result.channel == 1
        assert result.timestamp == 2.0

    def test_relaxed_focus(self):
        from eegstream.core.data_types import MentalState
        from eegstream.processing.classifier import StateClassifier

        result = StateClassifier().classify(self.estimate(alpha=30, beta=10, theta=5))
        assert result.label == MentalState.RELAXED_FOCUS
        assert result.quality_score == 70

    def test_active_state(self):
        from eegstream.core.data_types import MentalState
        from eegstream.processing.classifier import StateClassifier

        result = StateClassifier().classify(self.estimate(alpha=5, beta=30, theta=5))
        assert result.label == MentalState.ACTIVE_STATE
        assert result.quality_score == 40

    def test_ties_are_active(self):
        from eegstream.core.data_types import MentalState
        from eegstream.processing.classifier import StateClassifier

        assert StateClassifier()(self.estimate(alpha=10, beta=10, theta=20)).label == MentalState.ACTIVE_STATE

    def test_custom_policy(self):
        from eegstream.processing.classifier import ClassifierPolicy, StateClassifier

        classifier = StateClassifier(ClassifierPolicy(deep_quality=100))
        assert classifier.classify(self.estimate(alpha=30, beta=10, theta=20)).quality_score == 100
        with pytest.raises(ValueError):
            ClassifierPolicy(active_quality=101)


class TestEventHub:
    """Tests for consumer notifications."""

    def test_failing_subscriber_does_not_stop_delivery(self):
        from eegstream.core.events import EventHub, Topic

        hub = EventHub()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        hub.subscribe(Topic.STATE, broken)
        hub.subscribe(Topic.STATE, received.append)
        hub.publish(Topic.STATE, "x")

        assert received == ["x"]

    def test_unsubscribe_handle(self):
        from eegstream.core.events import EventHub, Topic

        hub = EventHub()
        received = []
        unsubscribe = hub.subscribe(Topic.STATUS, received.append)
        unsubscribe()
        hub.publish(Topic.STATUS, "x")

        assert received == []
        assert hub.subscriber_count(Topic.STATUS) == 0


class TestSimulator:
    """Tests for synthetic sample sources."""

    def test_sinusoid_exact(self):
        from eegstream.hardware.simulator import sinusoid

        wave = sinusoid(10.0, 50.0, FS, 250)
        t = np.arange(250) / FS
        assert np.allclose(wave, 50.0 * np.sin(2 * np.pi * 10.0 * t))

    def test_sinusoid_samples(self):
        from eegstream.hardware.simulator import sinusoid_samples

        samples = sinusoid_samples(10.0, 50.0, FS, 5, n_channels=8, start_time=1.0)
        assert len(samples) == 5
        assert samples[1].timestamp == pytest.approx(1.0 + 1 / FS)
        assert samples[1].channels.shape == (8,)
        assert np.all(samples[1].channels == samples[1].channels[0])

    def test_generate_is_deterministic(self):
        from eegstream.hardware.simulator import SyntheticSampleSource

        first = SyntheticSampleSource(n_channels=4, noise_level=5.0, seed=42).generate(100)
        second = SyntheticSampleSource(n_channels=4, noise_level=5.0, seed=42).generate(100)

        assert np.array_equal(np.vstack([s.channels for s in first]),
                              np.vstack([s.channels for s in second]))

    def test_generate_continues(self):
        from eegstream.hardware.simulator import SyntheticSampleSource

        source = SyntheticSampleSource(n_channels=2)
        first = source.generate(10)
        second = source.generate(10)
        assert second[0].timestamp > first[-1].timestamp

    def test_simulator_callback(self):
        from eegstream.hardware.simulator import SyntheticSampleSource

        sim = SyntheticSampleSource(n_channels=8, sample_rate=FS)
        received = []

        sim.register_callback(received.append)
        stream = sim.connect()
        sim.start_acquisition()
        time.sleep(0.1)  # Let it run briefly
        sim.disconnect()

        assert stream.channel_count == 8
        assert len(received) > 0
        assert received[0].channels.shape == (8,)
        timestamps = [s.timestamp for s in received]
        assert timestamps == sorted(timestamps)


class TestSerialInterface:
    """Tests for the serial packet format (no hardware)."""

    @staticmethod
    def frame(seq, counts):
        from eegstream.hardware.serial_interface import SYNC_BYTES, checksum

        payload = bytes([seq]) + np.asarray(counts, dtype='>i2').tobytes()
        return SYNC_BYTES + payload + bytes([checksum(payload)])

    def test_parse_packet(self):
        from eegstream.hardware.serial_interface import packet_size, parse_packet

        data = self.frame(7, [100, -200, 0, 32767])
        assert len(data) == packet_size(4)

        seq, channels = parse_packet(data, n_channels=4, scale_uv=0.5)
        assert seq == 7
        assert list(channels) == [50.0, -100.0, 0.0, 16383.5]

    def test_parse_packet_bad_checksum(self):
        from eegstream.hardware.serial_interface import parse_packet

        data = bytearray(self.frame(1, [1, 2]))
        data[-1] = (data[-1] + 1) % 256

        assert parse_packet(bytes(data), n_channels=2, scale_uv=1.0) is None
        assert parse_packet(bytes(data[:-1]), n_channels=2, scale_uv=1.0) is None

    def test_feed_resyncs(self):
        from eegstream.hardware.serial_interface import SerialSampleSource

        source = SerialSampleSource(port="/dev/null", n_channels=2, sample_rate=FS, scale_uv=1.0)
        received = []
        source.register_callback(received.append)

        corrupt = bytearray(self.frame(2, [9, 9]))
        corrupt[3] ^= 0xFF
        partial = self.frame(4, [5, 6])[:4]
        data = bytearray(b'\x01\x02' + self.frame(1, [10, -10]) + bytes(corrupt)
                         + self.frame(3, [20, -20]) + partial)

        tail = source.feed(data)

        assert [list(s.channels) for s in received] == [[10.0, -10.0], [20.0, -20.0]]
        assert source.dropped_packets >= 1
        assert bytes(tail) == partial


class TestCoordinator:
    """Tests for the stream coordinator."""

    @staticmethod
    def coordinator(n_channels=1, **kwargs):
        from eegstream.coordinator import StreamCoordinator

        return StreamCoordinator(make_stream(n_channels=n_channels), **kwargs)

    def test_end_to_end_alpha_dominates(self):
        from eegstream.core.constants import BAND_NAMES
        from eegstream.hardware.simulator import sinusoid_samples

        coord = self.coordinator(n_channels=8)
        accepted = coord.push_samples(sinusoid_samples(10.0, 50.0, FS, 250, n_channels=8))
        estimates = coord.run_analysis_cycle()

        assert accepted == 250
        assert len(estimates) == 8
        for estimate in estimates:
            powers = estimate.to_dict()
            others = [powers[b] for b in BAND_NAMES if b != "alpha"]
            assert powers["alpha"] > max(others)
        assert coord.latest_band_powers == estimates
        coord.disconnect()

    def test_notifications(self):
        from eegstream.core.events import Topic
        from eegstream.hardware.simulator import SignalComponent, SyntheticSampleSource

        coord = self.coordinator(n_channels=2)
        received = {topic: [] for topic in Topic}
        for topic in Topic:
            coord.subscribe(topic, received[topic].append)

        source = SyntheticSampleSource(
            n_channels=2, sample_rate=FS,
            components=[SignalComponent(10.0, 50.0), SignalComponent(20.0, 10.0)],
        )
        coord.push_samples(source.generate(500))
        coord.run_analysis_cycle()
        coord.push_samples(source.generate(50))
        coord.run_analysis_cycle()

        assert len(received[Topic.RAW_SAMPLE]) == 550
        assert len(received[Topic.FILTERED_SAMPLE]) == 550
        assert len(received[Topic.BAND_POWERS]) == 2
        # Same label twice: only the first result is published
        assert len(received[Topic.STATE]) == 1
        assert received[Topic.STATE][0].label.value == "RelaxedFocus"
        assert coord.latest_classification.label.value == "RelaxedFocus"
        coord.disconnect()

    def test_insufficient_data_skips_cycle(self):
        from eegstream.hardware.simulator import sinusoid_samples

        coord = self.coordinator()
        coord.push_samples(sinusoid_samples(10.0, 50.0, FS, 100))

        assert coord.run_analysis_cycle() is None
        assert coord.latest_band_powers is None

    def test_no_new_samples_skips_cycle(self):
        from eegstream.hardware.simulator import sinusoid_samples

        coord = self.coordinator()
        coord.push_samples(sinusoid_samples(10.0, 50.0, FS, 250))

        assert coord.run_analysis_cycle() is not None
        assert coord.run_analysis_cycle() is None

    def test_overlapping_cycle_is_skipped(self):
        from eegstream.hardware.simulator import sinusoid_samples

        coord = self.coordinator()
        coord.push_samples(sinusoid_samples(10.0, 50.0, FS, 250))

        holding = threading.Event()
        release = threading.Event()

        def hold_lock():
            with coord._analysis_lock:
                holding.set()
                release.wait(timeout=5)

        thread = threading.Thread(target=hold_lock)
        thread.start()
        holding.wait(timeout=5)
        try:
            assert coord.run_analysis_cycle() is None
            assert coord.skipped_cycles == 1
        finally:
            release.set()
            thread.join()

    def test_rejected_samples(self):
        from eegstream.core.data_types import Sample

        coord = self.coordinator(n_channels=2)
        assert coord.push_sample(Sample(1.0, [1.0, 2.0])) is not None

        assert coord.push_sample(Sample(2.0, [1.0])) is None
        assert coord.push_sample(Sample(2.0, [np.inf, 1.0])) is None
        assert coord.push_sample(Sample(0.5, [1.0, 2.0])) is None
        assert coord.push_sample(Sample(float("nan"), [1.0, 2.0])) is None
        assert coord.rejected_count == 4
        assert len(coord.raw_buffer) == 1
        assert len(coord.filtered_buffer) == 1

        assert coord.push_sample(Sample(2.0, [3.0, 4.0])) is not None
        assert len(coord.raw_buffer) == 2

    def test_focus_channel(self):
        from eegstream.hardware.simulator import sinusoid_samples

        coord = self.coordinator(n_channels=4)
        coord.focus_channel = 3
        coord.push_samples(sinusoid_samples(10.0, 50.0, FS, 250, n_channels=4))
        coord.run_analysis_cycle()

        assert coord.latest_classification.channel == 3
        with pytest.raises(ValueError):
            coord.focus_channel = 4
        with pytest.raises(ValueError):
            coord.focus_channel = -1

    def test_configuration_errors(self):
        from eegstream.coordinator import CoordinatorSettings
        from eegstream.core.errors import StreamConfigurationError

        with pytest.raises(StreamConfigurationError):
            self.coordinator(settings=CoordinatorSettings(buffer_seconds=0.5, window_seconds=1.0))
        with pytest.raises(StreamConfigurationError):
            self.coordinator(settings=CoordinatorSettings(analysis_interval=0))
        with pytest.raises(StreamConfigurationError):
            self.coordinator(settings=CoordinatorSettings(focus_channel=1))

    def test_connect_releases_source_on_setup_error(self):
        from eegstream.coordinator import CoordinatorSettings, connect
        from eegstream.core.errors import StreamConfigurationError
        from eegstream.hardware.simulator import SyntheticSampleSource

        source = SyntheticSampleSource(n_channels=2, sample_rate=FS)
        with pytest.raises(StreamConfigurationError):
            connect(source, settings=CoordinatorSettings(focus_channel=5))
        assert source.stream is None

        source = SyntheticSampleSource(n_channels=2, sample_rate=FS)
        with pytest.raises(StreamConfigurationError):
            connect(source, settings=CoordinatorSettings(window_seconds=8.0))
        assert source.stream is None

    def test_cadence_skips_ticks_when_analysis_overruns(self):
        from eegstream.coordinator import CoordinatorSettings, StreamCoordinator
        from eegstream.core.events import Topic
        from eegstream.hardware.simulator import sinusoid_samples

        interval = 0.01
        coord = StreamCoordinator(make_stream(), settings=CoordinatorSettings(analysis_interval=interval))
        samples = iter(sinusoid_samples(10.0, 50.0, FS, 2000))
        coord.push_samples(next(samples) for _ in range(250))

        cycles = []

        def slow_consumer(estimates):
            cycles.append(estimates)
            time.sleep(5 * interval)
            # New data so the next tick has something to analyze
            coord.push_sample(next(samples))

        coord.subscribe(Topic.BAND_POWERS, slow_consumer)

        start = time.monotonic()
        coord.start()
        time.sleep(0.5)
        coord.disconnect()
        elapsed = time.monotonic() - start

        assert len(cycles) >= 2
        assert coord.skipped_cycles >= len(cycles) - 1
        # Every tick either ran or was skipped; none were queued
        assert len(cycles) + coord.skipped_cycles <= elapsed / interval + 1
        assert len(cycles) <= elapsed / (5 * interval) + 1

    def test_stale_detection(self):
        from eegstream.core.data_types import Sample, StreamStatus
        from eegstream.core.events import Topic

        now = [100.0]
        coord = self.coordinator(clock=lambda: now[0])
        statuses = []
        coord.subscribe(Topic.STATUS, statuses.append)

        coord.push_sample(Sample(0.0, [1.0]))
        now[0] += 4.9
        assert coord.check_staleness() == StreamStatus.ACTIVE

        now[0] += 0.2
        assert coord.check_staleness() == StreamStatus.STALE
        now[0] += 10.0
        coord.check_staleness()
        assert statuses == [StreamStatus.STALE]

        coord.push_sample(Sample(1.0, [1.0]))
        assert statuses == [StreamStatus.STALE, StreamStatus.ACTIVE]
        assert coord.status == StreamStatus.ACTIVE

        event_types = [e.event_type for e in coord.session.events]
        assert "stale" in event_types and "resumed" in event_types

    def test_latency_metrics_recorded(self):
        from eegstream.hardware.simulator import sinusoid_samples

        coord = self.coordinator()
        coord.push_samples(sinusoid_samples(10.0, 50.0, FS, 250))
        coord.run_analysis_cycle()

        summary = coord.session.summary()
        assert set(summary["performance"]) == {"filter_latency_ms", "analysis_latency_ms"}
        assert summary["metadata"]["stream_name"] == "Test EEG"

    def test_disconnect_cleanup(self):
        from eegstream.coordinator import CoordinatorSettings, connect
        from eegstream.core.data_types import StreamStatus
        from eegstream.core.events import Topic
        from eegstream.hardware.simulator import SyntheticSampleSource

        source = SyntheticSampleSource(n_channels=4, sample_rate=FS)
        coord = connect(source, settings=CoordinatorSettings(analysis_interval=0.05))
        received = []
        for topic in Topic:
            coord.subscribe(topic, received.append)

        deadline = time.monotonic() + 5.0
        while coord.latest_band_powers is None and time.monotonic() < deadline:
            time.sleep(0.05)
        assert coord.latest_band_powers is not None
        assert coord.is_running

        coord.disconnect()
        count = len(received)
        assert received[-1] == StreamStatus.CLOSED

        time.sleep(0.2)
        assert len(received) == count
        assert len(coord.raw_buffer) == 0
        assert len(coord.filtered_buffer) == 0
        assert coord.band_power_history.channels() == []
        assert coord.latest_band_powers is None
        assert not coord.is_running
        assert source.stream is None

        # Idempotent, and late pushes are ignored
        coord.disconnect()
        assert coord.push_samples(source.generate(10)) == 0
        assert len(received) == count
        with pytest.raises(RuntimeError):
            coord.subscribe(Topic.STATE, received.append)

    def test_context_manager(self):
        from eegstream.coordinator import StreamCoordinator
        from eegstream.hardware.simulator import SyntheticSampleSource

        source = SyntheticSampleSource(n_channels=2, sample_rate=FS)
        with StreamCoordinator(source.connect(), source=source) as coord:
            assert coord.is_running
        assert coord.is_closed
        assert not coord.is_running


class TestSessionLogging:
    """Tests for session diagnostics."""

    def test_session_lifecycle(self):
        from eegstream.core.session_logging import SessionLogger

        session = SessionLogger()
        session_id = session.start_session("Test EEG", sample_rate=FS, n_channels=2)
        session.add_event("connect", "connected")
        for value in (1.0, 3.0):
            session.record_latency("filter_latency_ms", value)
        session.record_latency("unknown_metric", 5.0)
        session.update_sample_count(500, 2.0, rejected=3)

        summary = session.end_session()
        assert session_id
        assert summary["metadata"]["rejected_samples"] == 3
        assert summary["performance"]["filter_latency_ms"]["mean"] == 2.0
        assert "unknown_metric" not in summary["performance"]
        assert session.end_session() is None

    def test_configure_logging_is_idempotent(self):
        import logging

        from eegstream.core.session_logging import configure_logging

        logger = configure_logging(logging.WARNING)
        count = len(logger.handlers)
        configure_logging(logging.WARNING)
        assert len(logger.handlers) == count

    def test_session_logger_keeps_application_level(self):
        import logging

        from eegstream.core.session_logging import SessionLogger

        session_logger = logging.getLogger("eegstream.session")
        previous = session_logger.level
        session_logger.setLevel(logging.ERROR)
        try:
            SessionLogger().start_session("Test EEG")
            assert session_logger.level == logging.ERROR
        finally:
            session_logger.setLevel(previous)


class TestPerformance:
    """Performance benchmarks."""

    def test_filter_performance(self):
        """Filter should process 10 seconds of data in < 0.5s."""
        from eegstream.processing.filters import DigitalFilterStage

        stage = DigitalFilterStage(make_stream(n_channels=8))
        data = np.random.randn(2500, 8) * 50  # 10 seconds

        start = time.time()
        _ = stage.filter_chunk(data)
        elapsed = time.time() - start

        assert elapsed < 0.5, f"Filtering took {elapsed:.3f}s, expected < 0.5s"

    def test_spectral_performance(self):
        """One analysis cycle of 8 channels should take < 50ms."""
        from eegstream.processing.spectral import SpectralAnalyzer

        analyzer = SpectralAnalyzer(sample_rate=FS)
        data = np.random.randn(250, 8) * 50

        start = time.time()
        _ = analyzer.analyze(data)
        elapsed = time.time() - start

        assert elapsed < 0.05, f"Analysis took {elapsed:.3f}s, expected < 0.05s"


# Run with pytest
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
