"""Team capacity tracker — weekly allocations, time off and capacity reporting."""

__version__ = "1.3.0"
