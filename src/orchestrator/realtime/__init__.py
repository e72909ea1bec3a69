"""
Realtime assistant integration (tool schemas).
"""
