"""rulescope: rule dependency, cycle and performance analysis for declarative forms."""

from rulescope.analysis import RuleAnalyzer, analyze, compare_reports
from rulescope.config import ConfigError, RuleScopeConfig, load_config
from rulescope.models import AnalysisReport, ComparisonReport

__all__ = [
    "AnalysisReport",
    "ComparisonReport",
    "ConfigError",
    "RuleAnalyzer",
    "RuleScopeConfig",
    "analyze",
    "compare_reports",
    "load_config",
]
