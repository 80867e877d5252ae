"""Approval-gated plan execution for document-editing agents."""

__version__ = "0.1.0"
