"""Open Data Exporter: scheduled request/transform/template/export jobs."""

__version__ = "2.0.0"
