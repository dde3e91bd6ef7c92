"""
Developer Console
=================
Version 1.0 — October 2026

Self-hosted developer console backend: projects, git, lifecycle scans,
agents, alerts, plans, themes and server administration.
"""

__version__ = "1.0.0"
