"""
Render pipeline services.
"""
