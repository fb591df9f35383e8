"""Season calendars, the scoreboard-date index and schedule ingestion."""
