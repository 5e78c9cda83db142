"""
Utility helpers for Flowboard
"""
