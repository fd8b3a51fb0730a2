"""Application package: proxy API, client services and shared core."""
