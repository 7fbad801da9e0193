"""Scrapers for Texas Legislature Online: HTTP fetching and page extraction."""
