"""
Integration test harness for the Figure Collector stack.

Brings the Docker Compose services up in dependency-ordered phases,
gates each phase on health checks, runs the live-stack suites and
always tears the stack down.
"""

__version__ = "1.0.0"
