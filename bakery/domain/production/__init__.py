"""
Production Domain

Batches, their steps and issues, daily schedules, the resource ledger and the
services that plan and run production.
"""
