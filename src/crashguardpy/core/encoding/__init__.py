"""Encoders for crash log entries and death notes."""
