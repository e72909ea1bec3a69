"""
Admin dashboard metrics feed.
"""
