"""
Test Suite Initialization

Lumen knowledge core tests.
"""
