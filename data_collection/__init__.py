"""Data collection package for CreatorLogic.

Scraping itself runs on remote Apify actors.  This package holds the thin
REST client used to start and poll those actors, and the normaliser that
turns their loosely-typed output into ``Creator`` and ``ContentPost``
records.  Nothing here talks to Instagram directly.
"""
