"""Operator command-line interface for taxtoken deployments."""

__all__ = []
