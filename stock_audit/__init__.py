"""Branch compliance statistics (IRA / cycle count) from warehouse spreadsheet exports."""

__version__ = "0.1.0"
