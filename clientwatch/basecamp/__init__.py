"""Basecamp integration - OAuth credential lifecycle and REST gateway"""
