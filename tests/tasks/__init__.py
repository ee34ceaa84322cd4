"""
Task handler tests.
"""
