"""
Assessment modules of the placement test backend.
"""
