from __future__ import annotations

import argparse
import logging
import sys

from .app_logging import log_with_fields, setup_logger
from .config import AppConfig, ensure_local_paths, load_config
from .dispatcher import Dispatcher
from .errors import BarcodePackError, InvalidInput, WatchdogExpired
from .models import REQUEST_FORMATS, JobSpec, JobStatus
from .store import Store


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="barcodepack", description="Batch UPC-A / EAN-13 barcode packager")
    parser.add_argument("--config", required=True, help="Path to barcodepack YAML config")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Render a code range and build its archive")
    generate.add_argument("--start", required=True, help="First 11-digit base (inclusive)")
    generate.add_argument("--end", required=True, help="Last 11-digit base (inclusive)")
    generate.add_argument("--order", required=True, help="Order id")
    generate.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=sorted(REQUEST_FORMATS),
        help="Requested output format; repeatable. Defaults come from the config",
    )
    generate.add_argument("--callback-url", help="URL notified when the archive is ready")
    generate.add_argument("--callback-token", help="Secret used to sign the callback body")
    generate.add_argument(
        "--replace",
        action="store_true",
        help="Delete earlier jobs, files and archives for the same order id",
    )

    status = subparsers.add_parser("status", help="Show one job")
    status.add_argument("--job-id", required=True)

    subparsers.add_parser("jobs", help="List all jobs")

    finalize = subparsers.add_parser("finalize", help="Package a job's output now")
    finalize.add_argument("--job-id", required=True)

    watch = subparsers.add_parser("watch", help="Poll a job until it is complete, then finalize it")
    watch.add_argument("--job-id", required=True)
    return parser


def _open_runtime(config: AppConfig) -> tuple[Store, Dispatcher]:
    ensure_local_paths(config)
    logger = setup_logger(config.paths.log)
    store = Store(config.paths.db)
    store.init_schema()
    dispatcher = Dispatcher(config=config, store=store, logger=logger)
    return store, dispatcher


def _format_job(job: JobStatus) -> str:
    archive = job.archive_path or "-"
    return (
        f"{job.job_id} order={job.order_id} range={job.start_base}..{job.end_base} "
        f"chunks={job.completed_chunks}/{job.total_chunks} failed={job.failed_chunks} "
        f"progress={job.percentage}% archive={archive}"
    )


def cmd_generate(config: AppConfig, args: argparse.Namespace) -> int:
    store, dispatcher = _open_runtime(config)
    try:
        spec = JobSpec(
            order_id=args.order,
            start_base=args.start,
            end_base=args.end,
            formats=args.formats,
            callback_url=args.callback_url,
            callback_token=args.callback_token,
        )
        try:
            job = dispatcher.generate(spec, replace_existing=bool(args.replace))
        except InvalidInput as exc:
            print(f"invalid request: {exc}", file=sys.stderr)
            return 2
        print(_format_job(job))
        return 0
    except KeyboardInterrupt:
        log_with_fields(logging.getLogger("barcodepack"), logging.INFO, "shutdown", reason="keyboard_interrupt")
        return 130
    finally:
        store.close()


def cmd_status(config: AppConfig, job_id: str) -> int:
    ensure_local_paths(config)
    store = Store(config.paths.db)
    try:
        store.init_schema()
        job = store.get_job(job_id)
        if job is None:
            print(f"job not found: {job_id}", file=sys.stderr)
            return 2
        print(_format_job(job))
        print(f"  output_root={job.output_root}")
        print(f"  formats={','.join(job.formats.to_list())}")
        print(f"  created_at={job.created_at} finished_at={job.finished_at or '-'}")
        return 0
    finally:
        store.close()


def cmd_jobs(config: AppConfig) -> int:
    ensure_local_paths(config)
    store = Store(config.paths.db)
    try:
        store.init_schema()
        jobs = store.list_jobs()
        if not jobs:
            print("(no jobs yet)")
        for job in jobs:
            print(_format_job(job))
        return 0
    finally:
        store.close()


def cmd_finalize(config: AppConfig, job_id: str) -> int:
    store, dispatcher = _open_runtime(config)
    try:
        if store.get_job(job_id) is None:
            print(f"job not found: {job_id}", file=sys.stderr)
            return 2
        outcome = dispatcher.finalize(job_id)
        print(f"{job_id}: {outcome.value}")
        return 0
    finally:
        store.close()


def cmd_watch(config: AppConfig, job_id: str) -> int:
    store, dispatcher = _open_runtime(config)
    try:
        if store.get_job(job_id) is None:
            print(f"job not found: {job_id}", file=sys.stderr)
            return 2
        try:
            state = dispatcher.watch(job_id)
        except WatchdogExpired as exc:
            print(str(exc), file=sys.stderr)
            return 1
        print(f"{job_id}: {state.value}")
        return 0
    except KeyboardInterrupt:
        log_with_fields(logging.getLogger("barcodepack"), logging.INFO, "shutdown", reason="keyboard_interrupt")
        return 130
    finally:
        store.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return 2

    try:
        if args.command == "generate":
            return cmd_generate(config, args)
        if args.command == "status":
            return cmd_status(config, args.job_id)
        if args.command == "jobs":
            return cmd_jobs(config)
        if args.command == "finalize":
            return cmd_finalize(config, args.job_id)
        if args.command == "watch":
            return cmd_watch(config, args.job_id)
    except BarcodePackError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
