"""
TaskPilot — natural-language task orchestration across specialized agents.
"""

__version__ = "0.1.0"
