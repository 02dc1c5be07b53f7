"""
Command line entry point for the EV range prediction engine
"""
import argparse
import json
import signal
import sys
import threading
from typing import List, Optional

from tqdm import tqdm

from app.services.config_service import merged_runtime_config
from app.services.range_service import RangeService
from src.utils.errors import EVRangeError
from src.utils.logger import error, print_summary, setup_logger, warning


def _load_json(path: str):
    if path == '-':
        return json.load(sys.stdin)
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def _emit(data):
    print(json.dumps(data, indent=2, default=str))


def cmd_predict(service: RangeService, args) -> int:
    prediction = service.predict(_load_json(args.request))
    _emit(prediction.to_response())
    print_summary("TRIP PREDICTION", {
        'source': prediction.source,
        'distance_km': round(prediction.route.total_distance_km, 2),
        'energy_kwh': round(prediction.energy_consumption_kwh, 2),
        'wh_per_km': round(prediction.consumption_per_km, 1),
        'end_soc': round(prediction.predicted_end_soc, 1),
        'can_complete': prediction.can_complete,
        'confidence': round(prediction.confidence, 2),
    })
    return 0


def cmd_sync(service: RangeService, args) -> int:
    request = _load_json(args.request)
    cancel = threading.Event()
    trips = request.get('trips', []) if isinstance(request, dict) else []

    # Ctrl-C stops the batch after the trip in flight instead of unwinding it
    on_main_thread = threading.current_thread() is threading.main_thread()
    if on_main_thread:
        previous_handler = signal.getsignal(signal.SIGINT) or signal.SIG_DFL
        signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())

    progress = tqdm(total=len(trips), desc="Trips", disable=not args.progress)
    try:
        result = service.sync(request, cancel_event=cancel, on_trip_done=lambda _: progress.update(1))
    finally:
        progress.close()
        if on_main_thread:
            signal.signal(signal.SIGINT, previous_handler)

    _emit(result.to_response())
    print_summary("SYNC SUMMARY", {
        'user': result.user_id,
        'synced': result.synced_count,
        'skipped': result.count('skipped'),
        'retryable': result.count('retryable'),
        'failed': result.count('failed'),
        'cancelled': result.count('cancelled'),
        'cells_created': result.new_segments_created,
        'cells_updated': result.crowd_updates_applied,
    })
    if result.cancelled:
        warning(f"Sync interrupted, {result.count('cancelled')} trips left for the next run")
        return 130
    return 0 if result.count('retryable') == 0 and result.count('failed') == 0 else 2


def cmd_crowd(service: RangeService, args) -> int:
    if len(args.geohash) == 1:
        _emit(service.get_crowd_by_geohash(args.geohash[0]).to_dict())
    else:
        _emit(service.get_crowd_segments(args.geohash))
    return 0


def cmd_trips(service: RangeService, args) -> int:
    if args.summary:
        summary = service.trip_summary(args.user)
        _emit(summary)
        return 0
    _emit(service.get_trips(args.user, args.limit, args.cursor))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='ev-range', description="EV range prediction with crowd-sourced consumption data")
    parser.add_argument('--store', type=str, default=None, help='Path of a file-backed store snapshot (default: in-memory)')
    parser.add_argument('--log-mode', type=str, default=None,
                        choices=['PRODUCTION', 'DEVELOPMENT', 'DEBUG', 'SILENT', 'TESTING'],
                        help='Logging mode (default: EV_RANGE_LOG_MODE or PRODUCTION)')
    parser.add_argument('--overrides', type=str, default=None, help='YAML file with runtime overrides')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('predict', help='Predict energy and range for a route (JSON request, - for stdin)')
    p.add_argument('request', type=str)
    p.set_defaults(func=cmd_predict)

    p = sub.add_parser('sync', help='Sync a batch of trips (JSON request, - for stdin)')
    p.add_argument('request', type=str)
    p.add_argument('--progress', action='store_true', help='Show a progress bar over the batch')
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser('crowd', help='Show crowd data for one or more geohashes')
    p.add_argument('geohash', nargs='+')
    p.set_defaults(func=cmd_crowd)

    p = sub.add_parser('trips', help="List a user's trips, newest first")
    p.add_argument('user', type=str)
    p.add_argument('--limit', type=int, default=None)
    p.add_argument('--cursor', type=str, default=None)
    p.add_argument('--summary', action='store_true', help='Summarize the full trip history instead')
    p.set_defaults(func=cmd_trips)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(args.log_mode)

    config = merged_runtime_config(args.overrides)
    if args.store:
        config['store'] = {**config['store'], 'backend': 'file', 'file_path': args.store}

    try:
        with RangeService(config=config) as service:
            return args.func(service, args)
    except EVRangeError as e:
        error(f"{type(e).__name__}: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
