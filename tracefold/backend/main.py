from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import NoReturn

import uvicorn
from pydantic import ValidationError

from . import pipeline
from .aggregation import Aggregator, AggregatorWorker, Group
from .api.main import create_app, set_aggregator_stats
from .api.routes.config import set_active_config
from .api.serializers import ConfigResponse
from .config import get_settings
from .ingest import LogTailer
from .metrics import METRICS
from .output import JsonLinesSink, sink_consumer
from .pipeline import init_queues

logger = logging.getLogger("tracefold.main")


def _log_drop(group: Group, reason: str) -> None:
    logger.debug(
        "Dropped %s group %r with %d buffered messages",
        reason, group.key, len(group.messages),
    )


def build_aggregator(args: argparse.Namespace) -> Aggregator:
    settings = get_settings()
    return Aggregator(
        max_groups=args.max_groups,
        sweep_interval=args.sweep_interval,
        stale_timeout=args.stale_timeout,
        completion_marker=args.marker,
        correlation_field=settings.CORRELATION_FIELD,
        message_field=settings.MESSAGE_FIELD,
        status_fields=settings.STATUS_FIELDS,
        on_drop=_log_drop,
    )


# ---------------------------------------------------------------------------
# Periodic tasks
# ---------------------------------------------------------------------------

async def stats_reporter(
    worker: AggregatorWorker,
    shutdown_event: asyncio.Event,
    interval: float = 10.0,
) -> None:
    while not shutdown_event.is_set():
        await asyncio.sleep(interval)
        logger.info(
            "METRICS ingest=%s aggregator=%s queues=%s",
            METRICS.as_dict(), worker.stats, pipeline.queue_sizes(),
        )


async def stop_when_drained(tailer: LogTailer, shutdown_event: asyncio.Event) -> None:
    """Request shutdown once a finite input has been read and fully processed."""
    while not tailer.finished.is_set():
        await asyncio.sleep(0.1)
    # Let the tailer's last run_coroutine_threadsafe() puts land.
    await asyncio.sleep(0.1)
    await pipeline.input_queue.join()
    await pipeline.output_queue.join()
    logger.info("Input exhausted — shutting down")
    shutdown_event.set()


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

async def run(args: argparse.Namespace) -> int:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    settings = get_settings()

    init_queues(
        input_size=settings.INPUT_QUEUE_SIZE,
        output_size=settings.OUTPUT_QUEUE_SIZE,
    )

    def _signal_handler(_signum, _frame) -> None:
        logger.info("Shutdown signal received")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    # Aggregation
    aggregator = build_aggregator(args)
    worker = AggregatorWorker(
        input_queue=pipeline.input_queue,
        output_queue=pipeline.output_queue,
        aggregator=aggregator,
    )

    # Sink
    sink = JsonLinesSink(args.output)
    sink.open()

    # Ingest
    tailer: LogTailer | None = None
    if args.input:
        tailer = LogTailer(
            queue=pipeline.input_queue,
            loop=loop,
            path=args.input,
            follow=args.follow,
            start_at_end=settings.START_AT_END,
        )
        try:
            tailer.start()
        except FileNotFoundError as e:
            logger.error("%s", e)
            sink.close()
            return 1

    tasks = [
        asyncio.create_task(worker.run(), name="aggregator"),
        asyncio.create_task(
            sink_consumer(sink, pipeline.output_queue, shutdown_event), name="sink"
        ),
        asyncio.create_task(
            stats_reporter(worker, shutdown_event, settings.STATS_INTERVAL_SECONDS),
            name="stats",
        ),
    ]
    if tailer is not None and (not args.follow or args.input == "-"):
        tasks.append(
            asyncio.create_task(stop_when_drained(tailer, shutdown_event), name="drain")
        )

    uv_server: uvicorn.Server | None = None
    if args.api:
        set_aggregator_stats(lambda: worker.stats)
        set_active_config(ConfigResponse(
            correlation_field=settings.CORRELATION_FIELD,
            message_field=settings.MESSAGE_FIELD,
            status_fields=list(settings.STATUS_FIELDS),
            completion_marker=args.marker,
            max_groups=args.max_groups,
            sweep_interval_records=args.sweep_interval,
            stale_timeout_seconds=args.stale_timeout,
        ))
        uv_config = uvicorn.Config(
            create_app(),
            host=settings.API_HOST,
            port=settings.API_PORT,
            log_level="warning",
            loop="none",
        )
        uv_server = uvicorn.Server(uv_config)
        tasks.append(asyncio.create_task(uv_server.serve(), name="api"))

    logger.info(
        "tracefold — input=%r output=%r max_groups=%d sweep_every=%d stale=%ss API=%s",
        args.input or "(http only)", args.output, args.max_groups,
        args.sweep_interval, args.stale_timeout,
        f"http://{settings.API_HOST}:{settings.API_PORT}" if args.api else "off",
    )

    await shutdown_event.wait()

    if uv_server is not None:
        uv_server.should_exit = True
    if tailer is not None:
        tailer.stop()
    for t in tasks:
        if t.get_name() not in ("api", "sink"):
            t.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    sink.close()
    logger.info("Final stats — ingest=%s aggregator=%s", METRICS.as_dict(), worker.stats)
    logger.info("tracefold stopped cleanly")
    return 0


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Fold per-request log lines into one record per trace id",
    )
    parser.add_argument("--input", default=settings.INPUT_PATH,
                        help="JSON-lines file to follow, '-' for stdin")
    parser.add_argument("--output", default=settings.OUTPUT_PATH,
                        help="JSON-lines output file, '-' for stdout")
    parser.add_argument("--no-follow", dest="follow", action="store_false",
                        default=settings.FOLLOW,
                        help="read the input once and exit when drained")
    parser.add_argument("--max-groups", type=int, default=settings.MAX_GROUPS)
    parser.add_argument("--sweep-interval", type=int, default=settings.SWEEP_INTERVAL_RECORDS)
    parser.add_argument("--stale-timeout", type=float, default=settings.STALE_TIMEOUT_SECONDS)
    parser.add_argument("--marker", default=settings.COMPLETION_MARKER)
    parser.add_argument("--no-api", dest="api", action="store_false",
                        default=settings.API_ENABLED)
    parser.add_argument(
        "--log-level", default=settings.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main() -> NoReturn:
    try:
        args = _parse_args()
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        print(f"ERROR: invalid configuration: {problems}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    try:
        build_aggregator(args)
    except ValueError as e:
        print(f"ERROR: invalid aggregation settings: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
