"""Shared utilities for funcstage (errors, logging)."""
