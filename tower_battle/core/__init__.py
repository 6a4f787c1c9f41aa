"""Stacking geometry: shape catalog, tower model and stability engine.

Pure and free of FastAPI/Redis concerns; the stage layer drives it.
"""
