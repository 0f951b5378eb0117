"""Pydantic models for funcstage configuration, results and state."""
