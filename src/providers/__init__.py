"""
Source providers for ReviewLens.

Each provider turns a location reference into raw reviews:
- Google Places API (structured)
- Outscraper (paid scraping service, async job polling)
- Playwright browser scraping (best effort)
- CSV upload parser
"""
