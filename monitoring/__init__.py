"""Monitoring package: configuration, error types, report generation and the bot."""
