"""Concrete camera, speech input and speech output devices.

Each adapter imports its hardware library, so they are imported one by one
where they are wired; tests use in-memory doubles instead.
"""
