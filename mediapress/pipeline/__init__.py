"""
This package contains the compression pipeline.

`TaskQueue` drains tasks one at a time, `MediaCompressor` turns a single media
item into its compressed form, and `MediaSelection` collects the user's picks
and submits them as a task.
"""
