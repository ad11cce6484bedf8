"""
Exposure records and change detection.

An ExposureRecord is one load-balancer rule: a service port with an
external address and its resolved backend list.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class ExposureRecord:
    """One (service, exposed port) rule with live backends."""

    name: str
    namespace: str
    service: str
    load_balancer_address: str
    exposed_port: int
    target_port: int
    backends: Tuple[str, ...]

    # Aliases for templates written against the historical field names

    @property
    def endpoints(self) -> Tuple[str, ...]:
        return self.backends

    @property
    def frontend_port(self) -> int:
        return self.exposed_port

    @property
    def backend_port(self) -> int:
        return self.target_port

    @property
    def load_balancer_ip(self) -> str:
        return self.load_balancer_address

    def canonical(self) -> "ExposureRecord":
        """Same record with its backends sorted."""
        return ExposureRecord(
            name=self.name,
            namespace=self.namespace,
            service=self.service,
            load_balancer_address=self.load_balancer_address,
            exposed_port=self.exposed_port,
            target_port=self.target_port,
            backends=tuple(sorted(self.backends)),
        )


def canonicalize(records: Sequence[ExposureRecord]) -> List[ExposureRecord]:
    """Records sorted by name, each with sorted backends."""
    return sorted((r.canonical() for r in records), key=lambda r: r.name)


def changed(
    previous: Optional[Sequence[ExposureRecord]],
    current: Sequence[ExposureRecord],
    mode: str = "ordered",
) -> bool:
    """
    Whether the exposure set differs from the last applied one.

    "ordered" compares every record and every backend in listing order, so
    a reordering alone counts as a change. "semantic" compares the sorted
    forms and ignores ordering. Nothing applied yet is always a change.
    """
    if previous is None:
        return True
    if mode == "semantic":
        return canonicalize(previous) != canonicalize(current)
    return list(previous) != list(current)
