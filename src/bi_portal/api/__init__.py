"""
FastAPI service exposing the access engine.
"""
