"""Command-line interface for funcstage."""
