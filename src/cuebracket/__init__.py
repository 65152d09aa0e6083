"""cuebracket - single-elimination billiards tournament manager."""

__version__ = "0.1.0"
