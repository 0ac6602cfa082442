"""
MeetFood short-form video backend.
"""
