"""Command-line interface for the voucher engine."""
