"""
HTTP API for rendering documents.
"""
