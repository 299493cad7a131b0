"""
stormrep package
================

Health and economic impact of severe weather events, from the NOAA Storm
Database.

- The CLI entry point is in `stormrep/cli.py`.
- Dataset download, caching and parsing are in `stormrep/loader.py`.
- Suffix-code normalization and damage scaling are in `stormrep/normalize.py`.
- Grouping per event type is in `stormrep/aggregate.py`.
- Top-N selection and the pipeline object are in `stormrep/engine.py`.
- The DOCX report is in `stormrep/report.py`.
"""

__version__ = '0.1.0'
