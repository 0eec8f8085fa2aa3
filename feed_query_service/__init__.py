"""
Instagram Feed Query Service
"""
__version__ = "1.0.0"
