"""Transcript ingestion for the video knowledge base.

This package turns a video's transcript into timestamped passages stored in a
per-video collection, driving each video through the QUEUED -> PROCESSING ->
READY | FAILED state machine.
"""
