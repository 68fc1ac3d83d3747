"""
酒店房态占用引擎
"""
__version__ = "1.0.0"
