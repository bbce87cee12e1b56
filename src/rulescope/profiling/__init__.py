"""Rule execution profiling."""

from rulescope.profiling.profiler import RuleProfiler, SlowRuleRecord

__all__ = ["RuleProfiler", "SlowRuleRecord"]
