"""noticewatch: scrape notice boards and announce new notices to Telegram."""
