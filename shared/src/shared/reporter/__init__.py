"""
Reporting utilities: SystemReporter and the emoji registry.
"""

from shared.reporter.system_reporter import SystemReporter

__all__ = ["SystemReporter"]
