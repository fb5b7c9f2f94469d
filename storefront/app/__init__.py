"""
FastAPI companion application for the storefront core.
"""
