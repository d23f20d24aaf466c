"""
Services Layer

Pure scheduling and bracket logic that:
- Accepts explicit domain values (teams, configs, brackets)
- Returns new values or result objects; inputs are never mutated
- Does NOT depend on HTTP request/response objects or the database
"""
