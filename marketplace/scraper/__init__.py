"""Competitor price scraping and price-drop alerts."""
