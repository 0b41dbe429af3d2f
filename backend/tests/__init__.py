"""
Test suite for the Bugsymart order & delivery backend.
"""
