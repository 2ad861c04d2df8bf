"""
HTTP API for remisslink.
"""
