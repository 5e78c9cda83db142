"""
Command line interface for Flowboard
"""
