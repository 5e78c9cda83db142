"""
HTTP API for Flowboard
"""
