"""CLI command implementations for funcstage."""
