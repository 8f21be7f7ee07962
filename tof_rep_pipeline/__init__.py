"""
ToF rep counting: live set reconciliation and post-set rep correction.
"""
__version__ = "0.1"
