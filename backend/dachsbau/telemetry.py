"""Spin telemetry: accepted spins, rejections and the stats feed."""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Anything that can receive a named event with a flat payload."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        ...


class LoggingTelemetrySink:
    """Writes each event to the application log."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        logger.info("TELEMETRY %s: %s", event_name, data)


class _Event:
    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SpinProcessedEvent(_Event):
    """spin_processed: emitted once per accepted spin."""

    player: str
    spin_cost: int
    multiplier: int
    payout: int
    net_delta: int
    free_spin_used: bool
    config_hash: str


@dataclass
class SpinRejectedEvent(_Event):
    """spin_rejected: cooldown, duplicate, gate or stake rejections."""

    player: str
    reason: str  # ErrorCode value
    remaining_ms: int | None = None


@dataclass
class SpinStatsEvent(_Event):
    """spin_stats: what the stats/achievement side observes after a spin."""

    player: str
    original_grid: list[str]
    final_grid: list[str]
    payout: int
    free_spin_used: bool
    insurance_used: bool
    new_balance: int
    config_hash: str


class TelemetryService:
    """Routes spin events to the configured sink."""

    def __init__(self, sink: TelemetrySink | None = None):
        self._sink = sink or LoggingTelemetrySink()
        self._sink_errors = 0

    def set_sink(self, sink: TelemetrySink) -> None:
        self._sink = sink

    def _safe_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Sink failures must never break a chat command."""
        try:
            self._sink.emit(event_name, data)
        except Exception as e:
            self._sink_errors += 1
            logger.warning(
                "Telemetry sink error (count=%d) on %s: %s", self._sink_errors, event_name, e
            )

    def emit_spin_processed(self, event: SpinProcessedEvent) -> None:
        self._safe_emit("spin_processed", event.to_dict())

    def emit_spin_rejected(self, event: SpinRejectedEvent) -> None:
        self._safe_emit("spin_rejected", event.to_dict())

    def emit_spin_stats(self, event: SpinStatsEvent) -> None:
        self._safe_emit("spin_stats", event.to_dict())


telemetry_service = TelemetryService()
