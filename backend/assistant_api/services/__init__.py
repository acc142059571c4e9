"""Domain services: intent routing, scraping, content assembly and chat orchestration."""
