"""BiaBook geospatial core: proximity search and service-area validation."""

__version__ = "0.1.0"
