"""Renewal and trial reminder scheduler.

Selects subscriptions crossing a reminder threshold, materializes one
``notifications`` row per milestone, and delivers undelivered rows by email
through a pluggable mail transport.
"""
