"""
Output writers for list, enriched and index files.
"""

from .writers import OutputWriter

__all__ = ['OutputWriter']
