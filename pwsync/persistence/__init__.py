"""
Persistence — Line reading, staging and atomic replacement of the mirror.
"""
