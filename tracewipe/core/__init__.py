"""
Shared infrastructure: clock, configuration and error helpers.
"""
