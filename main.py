#!/usr/bin/env python3
"""
EEG Stream - Main Entry Point

Headless real-time EEG processing: connects a source, filters it, and
prints band powers and mental-state changes as they are produced.
"""

import sys
import time
import argparse
import logging
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))


def build_source(args):
    """Create the sample source selected on the command line."""
    from eegstream.hardware import SerialSampleSource, SyntheticSampleSource

    if args.port:
        return SerialSampleSource(
            port=args.port,
            n_channels=args.channels,
            sample_rate=args.rate,
            baud_rate=args.baud,
        )
    return SyntheticSampleSource(
        n_channels=args.channels,
        sample_rate=args.rate,
        noise_level=3.0,
        line_noise=10.0,
        line_freq=args.notch or 50.0,
        channel_offset=0.002,
        seed=args.seed,
        name="Synthetic Unicorn",
    )


def run_stream(args):
    """Process a live stream until the duration elapses or Ctrl+C."""
    from eegstream import CoordinatorSettings, FilterSettings, Topic, connect
    from eegstream.core.constants import BAND_NAMES

    source = build_source(args)
    filter_settings = FilterSettings(notch_freq=args.notch)
    settings = CoordinatorSettings(focus_channel=args.focus)

    coordinator = connect(source, filter_settings=filter_settings, settings=settings)
    stream = coordinator.stream
    label = stream.channel_labels[args.focus]

    def on_state(result):
        print(f"[{result.timestamp:9.2f}s] {label}: {result.label.value} (quality {result.quality_score})")

    def on_band_powers(estimates):
        focus = estimates[args.focus]
        relative = focus.relative()
        bands = "  ".join(f"{name[:1].upper()} {relative[name]:5.1f}%" for name in BAND_NAMES)
        print(f"            {label}: {bands}")

    def on_status(status):
        print(f"*** {stream.name} is {status.value}")

    coordinator.subscribe(Topic.STATE, on_state)
    coordinator.subscribe(Topic.STATUS, on_status)
    if args.bands:
        coordinator.subscribe(Topic.BAND_POWERS, on_band_powers)

    print(f"Connected to {stream.name}: {stream.channel_count} channels at {stream.sample_rate:g} Hz")
    print(f"Channels: {', '.join(stream.channel_labels)}")
    print("Press Ctrl+C to stop")
    print()

    try:
        deadline = time.monotonic() + args.duration if args.duration else None
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.1)
    except KeyboardInterrupt:
        pass
    finally:
        stats = coordinator.stats()
        summary = coordinator.session.summary()
        coordinator.disconnect()

    print()
    print(f"Samples: {stats['samples']}  rejected: {stats['rejected']}  "
          f"clipped: {stats['clipped']}  skipped cycles: {stats['skipped_cycles']}")
    for metric, values in summary["performance"].items():
        print(f"{metric}: mean {values['mean']:.3f} ms, max {values['max']:.3f} ms")


def run_test():
    """Run quick test of components without a live stream."""
    print("=" * 50)
    print("EEG Stream v0.1.0 - Component Test")
    print("=" * 50)
    print()

    import numpy as np
    from eegstream import DigitalFilterStage, SpectralAnalyzer, StateClassifier
    from eegstream.hardware import SyntheticSampleSource

    print("1. Testing synthetic source...")
    source = SyntheticSampleSource(n_channels=8, sample_rate=250, seed=0)
    stream = source.connect()
    samples = source.generate(500)
    data = np.vstack([s.channels for s in samples])
    print(f"   ✓ Generated {data.shape[0]} samples x {data.shape[1]} channels")
    print(f"   ✓ Signal range: {data.min():.1f} to {data.max():.1f} µV")
    print(f"   ✓ Channels: {', '.join(stream.channel_labels)}")
    print()

    print("2. Testing filters...")
    stage = DigitalFilterStage(stream)
    filtered = stage.filter_chunk(data)
    print(f"   ✓ Filter processed {len(filtered)} samples")
    print()

    print("3. Testing spectral analysis...")
    analyzer = SpectralAnalyzer(sample_rate=stream.sample_rate, window_seconds=1.0)
    estimate = analyzer.compute_band_power(filtered[-analyzer.n_samples:, 0])
    for name, value in estimate.relative().items():
        print(f"     {name.capitalize():6s} {value:5.1f}%")
    print()

    print("4. Testing classifier...")
    result = StateClassifier().classify(estimate)
    print(f"   ✓ {result.label.value} (quality {result.quality_score})")
    print()

    print("=" * 50)
    print("All checks passed. Run: python main.py")
    print("=" * 50)


def main():
    """Main entry point with argument parsing."""
    from eegstream.core.constants import DEFAULT_FILTER_SETTINGS

    parser = argparse.ArgumentParser(
        description='EEG Stream - Real-time EEG processing',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          Process the synthetic stream
  python main.py --port /dev/ttyUSB0      Process a serial EEG adapter
  python main.py --test                   Run component tests
        """
    )
    parser.add_argument('--test', '-t', action='store_true',
                        help='Run component tests without a live stream')
    parser.add_argument('--port', '-p', help='Serial port of the EEG adapter (default: simulator)')
    parser.add_argument('--baud', type=int, default=115200, help='Serial baud rate')
    parser.add_argument('--channels', '-c', type=int, default=8, help='Number of channels')
    parser.add_argument('--rate', '-r', type=float, default=250.0, help='Sample rate (Hz)')
    parser.add_argument('--notch', type=float, default=None,
                        help='Line-noise notch frequency in Hz, 0 to disable (default: 50)')
    parser.add_argument('--us', action='store_true', help='60 Hz mains (North America)')
    parser.add_argument('--focus', '-f', type=int, default=0, help='Channel used for classification')
    parser.add_argument('--duration', '-d', type=float, default=0.0,
                        help='Seconds to run (default: until Ctrl+C)')
    parser.add_argument('--bands', '-b', action='store_true', help='Print band powers every cycle')
    parser.add_argument('--seed', type=int, default=None, help='Simulator noise seed')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    args = parser.parse_args()
    if args.notch is None:
        mains = 'notch_freq_us' if args.us else 'notch_freq_eu'
        args.notch = DEFAULT_FILTER_SETTINGS[mains]
    elif not args.notch:
        args.notch = None

    from eegstream.core.session_logging import configure_logging
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if args.test:
        run_test()
    else:
        run_stream(args)


if __name__ == "__main__":
    main()
