"""
Services Layer

Business logic that:
- Accepts domain inputs (sessions, models, plain mappings)
- Returns domain outputs (models, dataclasses, pages)
- Does NOT depend on HTTP request/response objects
"""
