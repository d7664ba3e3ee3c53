"""
Tools module for EntryLog.

This module provides command line tools:
- entrylog: add, list, export and import entries
"""
