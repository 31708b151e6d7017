"""
Runtime components: pipeline, scheduler, action log and in-memory limiters.
"""
