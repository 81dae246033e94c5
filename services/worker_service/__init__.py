"""
Worker Service - consumes thumbnail jobs and writes resized images back to storage
"""
