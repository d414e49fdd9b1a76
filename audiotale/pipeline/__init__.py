"""audiotale pipeline package.

This package contains chunk narration, chunk-group production, the merge
cache, the processing queue worker, background task supervision, and the
caller-facing `AudiobookService`.
"""
