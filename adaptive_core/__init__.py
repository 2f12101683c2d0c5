"""
Adaptive assessment core: adaptive sessions, ability estimation and
response-driven item calibration.
"""
