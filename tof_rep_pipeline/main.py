"""
Command line entry point: correct recorded sets offline or run a live BLE session.

    python -m tof_rep_pipeline.main process --input recording.csv
    python -m tof_rep_pipeline.main listen --address AA:BB:CC:DD:EE:FF --exercise squat --seconds 120
"""
import argparse
import asyncio
import json
import logging
from pathlib import Path

from .core.config import load_config
from .correction.pipeline import build_pipeline
from .data.data_loader import DataLoader
from .session.events import SetCompleted, ValidatedRepsReady
from .session.reconciler import RepSession
from .utils import result_to_dict, setup_logging

logger = logging.getLogger("tof_rep_pipeline.main")


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='ToF rep counting and reconciliation')
    parser.add_argument('--config', type=str, default=None,
                        help='JSON file with pipeline parameter overrides')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write logs to this file')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='mode', required=True)

    process = subparsers.add_parser('process', help='Correct every set in a recording CSV')
    process.add_argument('--input', type=str, required=True,
                         help='Recording CSV (session_id, timestamp_ms, z0..zN)')
    process.add_argument('--output', type=str, default=None,
                         help='Write the results as JSON to this path')

    listen = subparsers.add_parser('listen', help='Stream a live session from a device')
    listen.add_argument('--address', type=str, required=True,
                        help='BLE address of the rep counter')
    listen.add_argument('--exercise', type=str, default='exercise',
                        help='Exercise identifier for this session')
    listen.add_argument('--seconds', type=float, default=None,
                        help='Stop after this many seconds (default: until interrupted)')

    return parser.parse_args(argv)


def process_recording(args, config) -> dict:
    """Run the correction pipeline over each set in a recording."""
    input_path = Path(args.input)
    loader = DataLoader(input_path.parent)
    buffers = loader.load_recording(input_path.name)
    pipeline = build_pipeline(config)

    results = {}
    for buffer in buffers:
        result = pipeline.process(buffer)
        results[buffer.set_number] = result_to_dict(result)
        print(f"Set {buffer.set_number}: {result.count} reps")
        for rep, m in zip(result.validated_reps, result.rep_metrics):
            print(f"  Rep {rep.rep_num}: ROM {rep.rom_mm:.0f}mm, "
                  f"concentric {m.concentric_duration_ms / 1000:.2f}s, "
                  f"eccentric {m.eccentric_duration_ms / 1000:.2f}s, "
                  f"velocity {m.concentric_velocity_mps:.2f}m/s")

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(results, f, indent=2)
        logger.info(f"Results saved to {args.output}")
    return results


def _print_event(event):
    if isinstance(event, SetCompleted):
        print(f"Set {event.set_number} completed: {len(event.reps)} live reps "
              f"({event.frame_count} frames)")
    elif isinstance(event, ValidatedRepsReady):
        print(f"Set {event.set_number} validated: {event.count} reps")


def listen_session(args, config):
    """Stream one exercise from a device and print the reconciled report."""
    from .ble.bridge import stream_session

    session = RepSession(pipeline=build_pipeline(config), config=config.session)
    session.subscribe(_print_event)
    try:
        asyncio.run(stream_session(args.address, session, args.exercise, args.seconds))
    except KeyboardInterrupt:
        logger.info("Interrupted; finishing session")
    report = session.finish()
    session.close()

    for record in report.sets:
        summary = record.summary()
        print(f"Set {record.set_number}: {record.rep_count} reps, "
              f"avg velocity {summary.avg_velocity:.2f}m/s, "
              f"velocity loss {summary.velocity_loss_pct:.1f}%")
        for note in record.notes():
            print(f"  {note.title}: {note.label}. {note.action}")
    return report


def main(argv=None):
    args = parse_arguments(argv)
    setup_logging(args.log_file, logging.DEBUG if args.verbose else logging.INFO)
    config = load_config(args.config)

    if args.mode == 'process':
        return process_recording(args, config)
    return listen_session(args, config)


if __name__ == '__main__':
    main()
