"""
Shared services module

Import services by their direct module path, e.g.
``from shared.services.sheet_grid_parser import SheetGridParser``.
"""
