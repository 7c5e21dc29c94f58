"""
Release scheduling for time-gated premium content.
"""
