"""Instagram profile post scraper.

Drives a pool of persistent Playwright browser sessions, one per bot
account, and rotates across accounts with automatic quarantine and repair.
"""

__version__ = "0.1.0"
