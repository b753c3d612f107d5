"""
untisplan – WebUntis timetable client (fetch, cache, organize, remind).
"""
