"""Procurement assistant agent package.

Modules:
    intent_detection: Heuristic router from message text to Intent
    system_prompt: Prompt for the free-text completion fallback
    tools: Tool executors and their registry
    responses: Tool result to reply text and client metadata
"""
