"""
Tether service entry points.
"""
