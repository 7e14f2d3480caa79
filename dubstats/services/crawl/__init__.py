"""Registry index scraping.

Structure:
- base.py: Listing record and the spider contract
- spiders/: parsers for individual index page layouts
- runner.py: tiny CLI for checking parsing against stored or live pages

Fetching lives in services/registry_client.py; this package only parses.
"""
