"""dedupsync - content-defined chunk deduplication for backup images."""
