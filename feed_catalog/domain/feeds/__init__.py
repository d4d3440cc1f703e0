"""
Vendor feed import pipeline.

download -> detect -> extract -> map -> reconcile -> persist -> report
"""
