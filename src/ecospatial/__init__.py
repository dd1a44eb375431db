"""Conversational climate-layer agent for Gyeonggi-do open data."""

__version__ = "0.1.0"
