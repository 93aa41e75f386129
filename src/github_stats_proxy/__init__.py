"""
GitHub Stats Proxy - caching GitHub API proxy with aggregated user statistics.
"""

__version__ = "2.0.0"
