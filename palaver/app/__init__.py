"""
Palaver FastAPI application.
"""
