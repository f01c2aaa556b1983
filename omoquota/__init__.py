"""
omo-quota - quota tracking and strategy switching for Oh-My-OpenCode.
"""

__version__ = "1.0.0"
