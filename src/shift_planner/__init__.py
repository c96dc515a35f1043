"""
Shift Planner

Assigns employees to department shifts per day across locations, keeps
each day free of double-bookings, and re-applies saved days and weeks as
templates.
"""

__version__ = "1.0.0"
__author__ = "Shift Planner Team"
