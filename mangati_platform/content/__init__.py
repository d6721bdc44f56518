"""Content repository: series, chapters, pages, filters, reader library, reports."""
