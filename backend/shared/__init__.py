"""
Shared building blocks for the mirror-template service
"""
