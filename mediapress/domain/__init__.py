"""
Core domain models of mediapress.

Modules:
    exceptions.py: the error kinds raised by the compression pipeline.
    media.py: selected media items and their compressed payloads.
    task.py: tasks, per-item task states and task status.
    source_video.py: probed metadata of a source video, including its
                     orientation transform.
"""
