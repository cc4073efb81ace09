"""Prometheus counters for the door dialer."""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest


class Metrics:
    """Counters scraped from the /metrics endpoint.

    Each instance owns its own registry so several can coexist (e.g. in tests).
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Initialize the counters.

        Args:
            registry: Registry to register on (a fresh one by default)
        """
        self.registry = registry if registry is not None else CollectorRegistry()
        self._received = Counter(
            "door_dialer_authorizations_received",
            "Authorizations seen by this process",
            registry=self.registry,
        )
        self._missed = Counter(
            "door_dialer_authorizations_missed",
            "Authorizations that expired without being used",
            registry=self.registry,
        )
        self._activated = Counter(
            "door_dialer_door_activations",
            "Authorizations consumed by opening the door",
            registry=self.registry,
        )
        self._store_errors = Counter(
            "door_dialer_store_errors",
            "Store failures during admission cycles",
            registry=self.registry,
        )

    def increment_received(self) -> None:
        """Count one authorization seen (seeded or inserted)."""
        self._received.inc()

    def increment_missed(self) -> None:
        """Count one authorization that expired unused."""
        self._missed.inc()

    def increment_activated(self, count: int = 1) -> None:
        """Count authorizations consumed by an admission."""
        self._activated.inc(count)

    def increment_store_error(self) -> None:
        """Count one store failure."""
        self._store_errors.inc()

    def _sample(self, name: str) -> float:
        value = self.registry.get_sample_value(f"{name}_total")
        return value if value is not None else 0.0

    @property
    def received(self) -> float:
        """Authorizations received so far."""
        return self._sample("door_dialer_authorizations_received")

    @property
    def missed(self) -> float:
        """Authorizations missed so far."""
        return self._sample("door_dialer_authorizations_missed")

    @property
    def activated(self) -> float:
        """Authorizations consumed so far."""
        return self._sample("door_dialer_door_activations")

    @property
    def store_errors(self) -> float:
        """Store failures so far."""
        return self._sample("door_dialer_store_errors")

    def render(self) -> bytes:
        """Render all counters in the Prometheus text format."""
        return generate_latest(self.registry)
