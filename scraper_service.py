import argparse
import asyncio
import logging
import signal
import sys
import threading
from datetime import datetime

from flask import Flask, jsonify

from harvest.config import Settings
from harvest.diagnostics import RingBufferHandler, configure_logging
from harvest.pipeline import STATUS_FAILED, RunReport, run_once

logger = logging.getLogger("ScraperService")


class RunStats:
    """Shared between the run loop and the health app; nothing else writes it."""

    def __init__(self):
        self.started_at = str(datetime.now())
        self.runs = 0
        self.last_report = None
        self.last_error = None
        self._lock = threading.Lock()

    def record(self, report: RunReport):
        with self._lock:
            self.runs += 1
            self.last_report = report
            if report.status == STATUS_FAILED:
                self.last_error = report.error

    def snapshot(self) -> dict:
        with self._lock:
            last = self.last_report
            return {
                'started_at': self.started_at,
                'runs': self.runs,
                'last_error': self.last_error,
                'last_run': None if last is None else {
                    'status': last.status,
                    'finished_at': last.finished_at,
                    'days': last.days,
                    'harvested': last.harvested,
                    'secondary': last.secondary,
                    'persisted': last.persisted,
                    'error': last.error,
                },
            }


# --- Health Server ---
def create_app(stats: RunStats, ring: RingBufferHandler) -> Flask:
    app = Flask(__name__)

    @app.route('/')
    def home():
        return f"Match Stream Harvester Running... Last Error: {stats.last_error}"

    @app.route('/health')
    def health():
        return jsonify({
            "status": "running",
            "stats": stats.snapshot(),
            "logs_tail": ring.tail(5),
        })

    @app.route('/logs')
    def logs():
        return jsonify(ring.tail())

    return app


def start_web_server(app: Flask, port: int):
    thread = threading.Thread(
        target=lambda: app.run(host='0.0.0.0', port=port, use_reloader=False),
        daemon=True,
    )
    thread.start()
    return thread


# --- Runs ---
def run_one(settings: Settings) -> RunReport:
    return asyncio.run(run_once(settings))


def serve(settings: Settings, ring: RingBufferHandler):
    stats = RunStats()
    stop = threading.Event()

    def _stop(signum, frame):
        logger.info(f"[SUPERVISOR] Signal {signum}, stopping after this run.")
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    start_web_server(create_app(stats, ring), settings.port)
    logger.info(f"Health server on :{settings.port}; running every {settings.run_interval_s}s.")

    while not stop.is_set():
        try:
            report = run_one(settings)
        except Exception as e:
            logger.exception(f"[CRASH] Run raised: {e}")
            report = RunReport(status=STATUS_FAILED, error=str(e), finished_at=str(datetime.now()))
        stats.record(report)
        stop.wait(settings.run_interval_s)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Match stream harvester")
    parser.add_argument("command", nargs="?", choices=("run", "serve"), default="run",
                        help="run: one harvest and exit; serve: health server plus periodic runs")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    ring = configure_logging(settings.debug)

    if args.command == "serve":
        serve(settings, ring)
        return 0

    report = run_one(settings)
    return 1 if report.status == STATUS_FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
