"""Adapters binding the core ports to httpx, Playwright, PyMuPDF, SQLite and Telegram."""
