"""
Shared helpers for testing csm_engine and code built on it
"""
