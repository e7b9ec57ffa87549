"""fleetguard: role-based authorization and audit redaction for fleet operations."""

__version__ = "0.1.0"
