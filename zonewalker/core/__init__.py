"""Zone-walking engine: names, probing, walking and partitioning."""

from zonewalker.core.names import DomainName, compare, increment, normalize
from zonewalker.core.partition import Partition, PartitionPlanner, plan_partitions
from zonewalker.core.probe import WRAPPED, probe
from zonewalker.core.walker import EndReason, WalkOutcome, ZoneWalker

__all__ = [
    "DomainName",
    "compare",
    "increment",
    "normalize",
    "Partition",
    "PartitionPlanner",
    "plan_partitions",
    "WRAPPED",
    "probe",
    "EndReason",
    "WalkOutcome",
    "ZoneWalker",
]
