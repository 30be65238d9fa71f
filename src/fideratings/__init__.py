"""
FIDE Ratings - rating list archive and import pipeline

Ingests FIDE's monthly rating-list files (standard, rapid, blitz) into a
relational store and serves the resulting player and rating history.

Main components:
- fide: Rating-list download, archive extraction and file parsers
- db: SQLAlchemy models, database handle and the upsert engine
- services: Import orchestration, rating-change derivation, activity inference
- tasks: Stage registry and import locks for scheduled runs
- web: FastAPI JSON read API
"""

__version__ = "1.0.0"
