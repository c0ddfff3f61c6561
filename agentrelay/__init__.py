"""agentrelay: single-session-per-workspace orchestration of agent CLIs."""

__version__ = "0.1.0"
