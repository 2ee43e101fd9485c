"""
Optional InfluxDB export of realtime state.

Points are buffered per realtime update and written in batches from a
background thread, so the driver loop never blocks on the database.
"""

import logging
import threading
import time
from typing import List, Optional

from .config import DriverConfig
from .state import RealtimeStateSnapshot

try:
    from influxdb_client_3 import InfluxDBClient3, Point
    INFLUXDB_AVAILABLE = True
except ImportError:
    INFLUXDB_AVAILABLE = False

MEASUREMENT = "ur_realtime"


class RealtimeTelemetry:
    """
    Batches realtime snapshots into InfluxDB points.
    """

    def __init__(self, config: DriverConfig, client=None):
        """
        Args:
            config: Driver configuration (telemetry section)
            client: Pre-built client with a write(record=...) method; built
                from the configuration when omitted
        """
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.influx_client = client
        self.influx_buffer: List = []
        self.influx_buffer_lock = threading.Lock()
        self.influx_batch_thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def active(self) -> bool:
        return self.influx_client is not None

    def start(self):
        """Initialize the InfluxDB client if telemetry is enabled."""
        if not self.config.telemetry_enabled:
            self.logger.info("Telemetry disabled")
            return

        if self.influx_client is None:
            if not INFLUXDB_AVAILABLE:
                self.logger.warning("Telemetry enabled but influxdb3-python package not installed. "
                                    "Install with: pip install influxdb3-python")
                return

            try:
                self.influx_client = InfluxDBClient3(
                    host=self.config.influxdb_host,
                    database=self.config.influxdb_database,
                    token=self.config.influxdb_token
                )
            except Exception as e:
                self.logger.error(f"Failed to initialize InfluxDB client: {e}")
                self.influx_client = None
                return

        self._stop.clear()
        self.influx_batch_thread = threading.Thread(target=self._influx_batch_writer, daemon=True)
        self.influx_batch_thread.start()

        self.logger.info(f"InfluxDB telemetry enabled (batch mode, {self.config.telemetry_flush_interval}s "
                         f"interval): {self.config.influxdb_host}/{self.config.influxdb_database}")

    def record(self, snapshot: RealtimeStateSnapshot):
        """Buffer one realtime sample (non-blocking)."""
        if not self.active:
            return

        try:
            point = Point(MEASUREMENT).tag("robot", self.config.robot_host)
            for i, q in enumerate(snapshot.q_actual):
                point = point.field(f"q_actual_{i}", float(q))
            for i, v in enumerate(snapshot.tool_vector_actual):
                point = point.field(f"tool_{i}", float(v))
            point = (
                point
                .field("speed_scaling", float(snapshot.speed_scaling))
                .field("robot_mode", float(snapshot.robot_mode))
                .field("controller_time", float(snapshot.time))
                .time(time.time_ns())
            )

            with self.influx_buffer_lock:
                self.influx_buffer.append(point)
        except Exception as e:
            self.logger.warning(f"Failed to buffer InfluxDB point: {e}")

    def flush(self) -> int:
        """
        Write all buffered points.

        Returns:
            Number of points written
        """
        with self.influx_buffer_lock:
            if not self.influx_buffer:
                return 0
            points_to_write = self.influx_buffer[:]
            self.influx_buffer.clear()

        try:
            self.influx_client.write(record=points_to_write)
            self.logger.debug(f"Batch wrote {len(points_to_write)} points to InfluxDB")
        except Exception as e:
            self.logger.warning(f"Failed to batch write to InfluxDB: {e}")
            return 0
        return len(points_to_write)

    def _influx_batch_writer(self):
        """Background thread that writes buffered points every flush interval."""
        self.logger.info("InfluxDB batch writer thread started")

        while not self._stop.wait(self.config.telemetry_flush_interval):
            self.flush()

        # Final flush on shutdown
        written = self.flush()
        if written:
            self.logger.info(f"Final flush: wrote {written} points")
        self.logger.info("InfluxDB batch writer thread stopped")

    def close(self):
        if not self.active:
            return

        self._stop.set()
        if self.influx_batch_thread and self.influx_batch_thread.is_alive():
            self.logger.info("Waiting for InfluxDB batch writer to finish...")
            self.influx_batch_thread.join(timeout=5.0)
        else:
            self.flush()

        try:
            self.influx_client.close()
            self.logger.info("InfluxDB client closed")
        except Exception as e:
            self.logger.warning(f"Error closing InfluxDB client: {e}")
        self.influx_client = None
