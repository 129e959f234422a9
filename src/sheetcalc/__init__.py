"""sheetcalc -- spreadsheet formula parsing and evaluation engine."""

__version__ = "0.4.0"
