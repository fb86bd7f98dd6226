"""Instagram platform: browser sessions, timeline capture, orchestration.

Usage:
    from ig_scraper.platforms.instagram.executor import InstagramExecutor
"""
