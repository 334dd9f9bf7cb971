"""
Pydantic schemas used by the FastAPI API layer.

Keep request/response validation here (not in `main.py`) so the services and
tests share one definition of calibration, schedule and switch payloads.
"""
