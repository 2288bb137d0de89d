"""Host discovery agent steps: command helpers, NTP, agent upgrade, machine id, Tang checks."""

__version__ = "0.1.0"