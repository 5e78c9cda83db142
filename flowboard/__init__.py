"""
Flowboard - graph dataflow engine for node-based creative workflow boards
"""
__version__ = "0.1.0"
