"""Map participant rosters onto admin-defined import templates."""

__version__ = "0.3.0"
