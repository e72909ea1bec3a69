"""
Call lifecycle: session state machine, direct endpoints and metadata persistence.
"""
