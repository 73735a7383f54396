"""
idlink - Contact identity resolution service

Links partial contact records (email and/or phone number) that belong to
the same person into a single identity with one primary record.
"""

__version__ = "0.1.0"
