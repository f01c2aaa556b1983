"""
CLI module - Command-line interface
"""
