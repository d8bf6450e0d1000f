"""Simple monthly cost estimates for pods and namespaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

HOURS_PER_MONTH = 730


@dataclass
class PodResources:
    pod_name: str
    cpu: str
    memory: str


class CostCalculator:
    """Estimates cost, assuming one core and one GB per non-empty request."""

    def __init__(self, cpu_cost: float, memory_cost: float) -> None:
        self.cpu_cost_per_hour = cpu_cost
        self.memory_gb_cost_per_hour = memory_cost

    def _cpu_cost(self, cpu_request: str) -> float:
        return self.cpu_cost_per_hour if cpu_request else 0.0

    def _memory_cost(self, memory_request: str) -> float:
        return self.memory_gb_cost_per_hour if memory_request else 0.0

    def calculate_pod_cost(self, cpu_request: str, memory_request: str) -> float:
        """Monthly cost of one pod."""
        return (self._cpu_cost(cpu_request) + self._memory_cost(memory_request)) * HOURS_PER_MONTH

    def calculate_namespace_cost(self, resources: Iterable[PodResources]) -> float:
        """Monthly cost of all the given pods."""
        return sum(
            (self.calculate_pod_cost(resource.cpu, resource.memory) for resource in resources),
            0.0,
        )