"""
Team Health Intelligence

Aggregates per-person activity signals from several communication platforms
into team health statistics and isolation-risk insights.
"""

__version__ = "0.1.0"
