"""
Multi-vendor product catalog backend with a background feed import pipeline.
"""
