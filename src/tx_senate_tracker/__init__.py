"""Texas Senate bill tracker: scraping, normalization and scheduled refresh."""
