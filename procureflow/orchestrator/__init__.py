"""Conversational orchestration layer for ProcureFlow.

Intent models, the heuristic intent router, tool executors, and reply
synthesis for the procurement assistant.
"""
