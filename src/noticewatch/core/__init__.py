"""Core domain package for noticewatch.

Core contains fetching policy, dedup, attachment budgeting and delivery logic
without any HTTP client, browser, Telegram or storage-specific code, keeping
the pipeline portable.
"""
