"""News and earnings feed clients with rate-limit aware caching."""
