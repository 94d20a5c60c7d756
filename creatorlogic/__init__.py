"""CreatorLogic backend.

Job orchestration, partnership tracking and install attribution for
influencer-marketing agencies.  Scraping itself runs on remote Apify
actors; this package submits runs, polls them and persists the results.
"""
