"""Right-sizing recommendations for container resource requests."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, Decimal
from typing import Any, Iterator, Mapping

from kubelens.kube import KubeError
from kubelens.quantity import Quantity, parse_quantity

RECOMMENDED_CPU = "250m"
RECOMMENDED_MEMORY = "256Mi"
_RECOMMENDED_MILLI_CPU = {"250m": 250}
_RECOMMENDED_MEMORY_BYTES = {"256Mi": 256 * 1024 * 1024}
_DEFAULT_MILLI_CPU = 500
_DEFAULT_MEMORY_BYTES = 512 * 1024 * 1024
_CPU_PRICE_PER_MILLI = 0.01
_MEMORY_PRICE_PER_BYTE = 0.000000001

_DECIMAL_SUFFIXES = {-9: "n", -6: "u", -3: "m", 0: "", 3: "k", 6: "M", 9: "G", 12: "T", 15: "P", 18: "E"}
_BINARY_SUFFIXES = ["", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei"]


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


def _decimal_parts(amount: Decimal) -> tuple[int, int]:
    mantissa = int((amount * Decimal("1e9")).to_integral_value(rounding=ROUND_CEILING))
    exponent = -9
    while mantissa and mantissa % 1000 == 0 and exponent < 18:
        mantissa //= 1000
        exponent += 3
    return mantissa, exponent


def _canonical(quantity: Quantity) -> str:
    """The API server's canonical spelling of a quantity."""
    amount = quantity.amount
    if amount == 0:
        return "0"
    suffix = quantity.text.lstrip("+-0123456789.")
    binary = suffix in _BINARY_SUFFIXES[1:]
    if binary and abs(amount) >= 1024 and amount == amount.to_integral_value():
        value = int(amount)
        power = 0
        while value % 1024 == 0 and power < len(_BINARY_SUFFIXES) - 1:
            value //= 1024
            power += 1
        return f"{value}{_BINARY_SUFFIXES[power]}"
    mantissa, exponent = _decimal_parts(amount)
    if suffix[:1] in ("e", "E") and len(suffix) > 1:
        return f"{mantissa}e{exponent}" if exponent else str(mantissa)
    return f"{mantissa}{_DECIMAL_SUFFIXES[exponent]}"


@dataclass
class ResourceValues:
    cpu: str = ""
    memory: str = ""


@dataclass
class CostSavings:
    monthly_savings: float = 0.0
    percent_savings: float = 0.0
    reason: str = ""


@dataclass
class Optimization:
    pod_name: str
    container_name: str
    type: str
    current: ResourceValues
    recommended: ResourceValues
    savings: CostSavings
    confidence: int
    description: str


@dataclass
class OptimizationSummary:
    total_monthly_savings: float = 0.0
    total_optimizations: int = 0
    overall_confidence: int = 0
    risk_level: str = ""


@dataclass
class OptimizationReport:
    namespace: str
    total_pods: int = 0
    analyzed_pods: int = 0
    optimizations: list[Optimization] = field(default_factory=list)
    cost_savings: CostSavings = field(default_factory=CostSavings)
    summary: OptimizationSummary = field(default_factory=OptimizationSummary)


def _cpu_savings(current: Quantity, recommended: str) -> float:
    recommended_milli = _RECOMMENDED_MILLI_CPU.get(recommended, _DEFAULT_MILLI_CPU)
    return max((current.milli_value() - recommended_milli) * _CPU_PRICE_PER_MILLI, 0.0)


def _memory_savings(current: Quantity, recommended: str) -> float:
    recommended_bytes = _RECOMMENDED_MEMORY_BYTES.get(recommended, _DEFAULT_MEMORY_BYTES)
    return max((current.value() - recommended_bytes) * _MEMORY_PRICE_PER_BYTE, 0.0)


def _container_optimizations(pod_name: str, container: Mapping[str, Any]) -> Iterator[Optimization]:
    name = container.get("name", "")
    resources = container.get("resources") or {}
    requests = resources.get("requests")
    if requests is not None:
        cpu = parse_quantity(requests.get("cpu", "0"))
        if not cpu.is_zero():
            current = _canonical(cpu)
            if RECOMMENDED_CPU != current:
                yield Optimization(
                    pod_name=pod_name,
                    container_name=name,
                    type="CPU Right-Sizing",
                    current=ResourceValues(cpu=current),
                    recommended=ResourceValues(cpu=RECOMMENDED_CPU),
                    savings=CostSavings(
                        monthly_savings=_cpu_savings(cpu, RECOMMENDED_CPU),
                        percent_savings=25.0,
                        reason="CPU is over-provisioned based on usage patterns",
                    ),
                    confidence=75,
                    description="Reduce CPU requests to match actual usage patterns",
                )
        memory = parse_quantity(requests.get("memory", "0"))
        if not memory.is_zero():
            current = _canonical(memory)
            if RECOMMENDED_MEMORY != current:
                yield Optimization(
                    pod_name=pod_name,
                    container_name=name,
                    type="Memory Right-Sizing",
                    current=ResourceValues(memory=current),
                    recommended=ResourceValues(memory=RECOMMENDED_MEMORY),
                    savings=CostSavings(
                        monthly_savings=_memory_savings(memory, RECOMMENDED_MEMORY),
                        percent_savings=30.0,
                        reason="Memory is over-provisioned based on usage patterns",
                    ),
                    confidence=80,
                    description="Reduce memory requests to match actual usage patterns",
                )

    if not resources.get("limits"):
        yield Optimization(
            pod_name=pod_name,
            container_name=name,
            type="Missing Resource Limits",
            current=ResourceValues(cpu="Not set", memory="Not set"),
            recommended=ResourceValues(cpu="500m", memory="512Mi"),
            savings=CostSavings(
                monthly_savings=0.0,
                percent_savings=0.0,
                reason="Prevents cost spikes from resource exhaustion",
            ),
            confidence=95,
            description="Add resource limits to prevent runaway resource consumption",
        )


class ResourceOptimizer:
    """Suggests request sizes and limits for the pods of a namespace."""

    def __init__(self, client) -> None:
        self._client = client

    def analyze_namespace(self, namespace: str) -> OptimizationReport:
        with _failure(f"failed to get pods in namespace {namespace}"):
            pods = list(self._client.list("pods", namespace))

        report = OptimizationReport(namespace=namespace, total_pods=len(pods))
        for pod in pods:
            pod_name = (pod.get("metadata") or {}).get("name", "")
            for container in (pod.get("spec") or {}).get("containers") or []:
                report.optimizations.extend(_container_optimizations(pod_name, container))
            report.analyzed_pods += 1

        optimizations = report.optimizations
        if optimizations:
            summary = report.summary
            summary.total_monthly_savings = sum(o.savings.monthly_savings for o in optimizations)
            summary.total_optimizations = len(optimizations)
            summary.overall_confidence = sum(o.confidence for o in optimizations) // len(optimizations)
            if summary.overall_confidence >= 80:
                summary.risk_level = "Low"
            elif summary.overall_confidence >= 60:
                summary.risk_level = "Medium"
            else:
                summary.risk_level = "High"
        return report