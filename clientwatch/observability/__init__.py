"""Observability - logging and telemetry"""
