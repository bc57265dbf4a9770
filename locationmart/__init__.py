"""
LocationMart - location enrichment service

Composite geocoding plus spatial feature lookups against public ArcGIS
feature services.
"""

__version__ = "1.0.0"
