"""Intent validation and turn-order helpers.

Every intent a stage applies passes through the same validator pipeline, so
rejections carry consistent error kinds whether they come from the HTTP API or
from a chat mention.
"""
