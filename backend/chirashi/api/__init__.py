"""
Read-only HTTP access to the latest snapshot.
"""
