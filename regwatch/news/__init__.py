"""
Layer 1: Crawling and text-level heuristics.

Modules:
- crawler: Source fan-out, scheduling lanes, per-pass dedup
- quality: Text cleanup and the post-classification quality gate
- jurisdiction: Free-text jurisdiction → (country, state)
"""
