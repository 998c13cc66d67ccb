"""
Context-aware assistant pipeline.

Each user submission runs strictly in sequence:
aggregate -> summarize -> classify -> build prompt -> dispatch -> format.
"""
