"""Probe cycle and its scheduling loop."""

from csiliveness.probe.prober import ProbeCycle, ProbeOutcome, Prober
from csiliveness.probe.scheduler import Scheduler

__all__ = ["ProbeCycle", "ProbeOutcome", "Prober", "Scheduler"]
