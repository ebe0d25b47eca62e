"""API - authorization web glue"""
